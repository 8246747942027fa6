"""Template registry, compiler and Jinja2-backed renderer."""

from chartsmith.templates.compiler import (
    Binding,
    CompiledTemplate,
    LoopAnchor,
    compile_template,
)
from chartsmith.templates.registry import TemplateRegistry
from chartsmith.templates.renderer import Scope, TemplateRenderer, resolve_path

__all__ = [
    "Binding",
    "CompiledTemplate",
    "LoopAnchor",
    "Scope",
    "TemplateRegistry",
    "TemplateRenderer",
    "compile_template",
    "resolve_path",
]
