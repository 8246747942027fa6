"""Theme registry and packaged themes."""

from chartsmith.themes.registry import (
    ThemeRegistry,
    deep_merge,
    flatten,
    get_nested,
    validate_theme,
)

__all__ = ["ThemeRegistry", "deep_merge", "flatten", "get_nested", "validate_theme"]
