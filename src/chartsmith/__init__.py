"""chartsmith - template-driven chart rendering with incremental updates.

chartsmith renders structured data trees into markup through named templates
and themes. When a document is re-rendered with slightly different data, it
diffs the data against the previous render and patches the prior output
instead of rendering from scratch, whenever the patch is cheaper.

Core pieces:
- Templates: placeholders, if/each blocks and partials, compiled to Jinja2
- Themes: nested style groups flattened into dotted variables
- Incremental updates: structural diff, patch building, efficiency check
- ChartPipeline: cache, snapshot and patch orchestration
"""

__version__ = "0.1.0"
__author__ = "chartsmith Contributors"
