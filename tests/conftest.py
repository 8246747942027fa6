"""Shared pytest fixtures for chartsmith tests.

Fixtures are organized by category:
- Template fixtures: Small templates whose output is easy to assert on
- Registry fixtures: Template and theme registries, empty or built-in
- Data fixtures: Data trees for the built-in section grid
- Pipeline fixtures: Pipelines wired to the registries above
"""

from pathlib import Path
from typing import Any

import pytest

from chartsmith.config import ChartsmithConfig
from chartsmith.pipeline import ChartPipeline
from chartsmith.templates.registry import TemplateRegistry
from chartsmith.themes.registry import ThemeRegistry

# =============================================================================
# Template Fixtures
# =============================================================================

LIST_TEMPLATE = (
    '<svg width="{{width}}" height="{{height}}">'
    '<text class="title">{{title}}</text>'
    '<g class="rows">{{#each items}}<text class="row" fill="{{color}}">{{name}}</text>{{/each}}</g>'
    "</svg>"
)


@pytest.fixture
def list_template() -> dict[str, Any]:
    """Return a template config with a title binding and one anchored loop."""
    return {
        "name": "List",
        "category": "test",
        "variables": ["width", "height", "title", "items"],
        "body": LIST_TEMPLATE,
    }


@pytest.fixture
def theme_config() -> dict[str, Any]:
    """Return a minimal valid theme config."""
    return {
        "name": "Test",
        "colors": {
            "primary": "#112233",
            "background": "#ffffff",
            "textPrimary": "#000000",
            "borderPrimary": "#cccccc",
        },
        "typography": {
            "fontFamily": "monospace",
            "fontSize": {"title": 20},
        },
    }


# =============================================================================
# Registry Fixtures
# =============================================================================


@pytest.fixture
def templates() -> TemplateRegistry:
    """Return an empty template registry."""
    return TemplateRegistry(load_builtin=False)


@pytest.fixture
def builtin_templates() -> TemplateRegistry:
    """Return a template registry with the packaged templates."""
    return TemplateRegistry()


@pytest.fixture
def themes() -> ThemeRegistry:
    """Return a theme registry with the packaged themes (classic active)."""
    return ThemeRegistry()


# =============================================================================
# Data Fixtures
# =============================================================================


@pytest.fixture
def list_data() -> dict[str, Any]:
    """Return data for the list template."""
    return {
        "title": "Inventory",
        "items": [
            {"name": "Apples", "color": "#ff0000"},
            {"name": "Pears", "color": "#00ff00"},
        ],
    }


@pytest.fixture
def grid_data() -> dict[str, Any]:
    """Return data for the built-in section grid."""
    return {
        "title": "Quarterly report",
        "sections": [
            {
                "name": "Revenue",
                "items": [
                    {"name": "Q1", "value": 120.5},
                    {"name": "Q2", "value": 98},
                ],
            },
            {
                "name": "Costs",
                "items": [
                    {"name": "Staff", "value": 64.25},
                ],
            },
        ],
    }


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def pipeline(list_template: dict[str, Any]) -> ChartPipeline:
    """Return a pipeline with the built-in templates plus the list template."""
    registry = TemplateRegistry()
    registry.register("list", list_template)
    return ChartPipeline(config=ChartsmithConfig(), templates=registry, themes=ThemeRegistry())


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
