"""Theme registry.

Themes are nested style groups (colors, typography, spacing, borders,
shadows, animations). Templates read them through a flattened bundle that
apply_to_data() attaches to a deep copy of the caller's data under "theme".

Usage:
    themes = ThemeRegistry()
    themes.register("brand", {...})
    themes.set_active("brand")
    themed = themes.apply_to_data({"sections": [...]})
"""

import copy
import logging
import re
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from chartsmith.errors import NotFoundError, RegistrationError
from chartsmith.models.theme import Theme
from chartsmith.utils.hashing import stable_hash

logger = logging.getLogger(__name__)

DEFAULT_THEME = "classic"

# Leaves every theme must define, with their expected type
REQUIRED_FIELDS: dict[str, type] = {
    "name": str,
    "colors.primary": str,
    "colors.background": str,
    "colors.textPrimary": str,
    "typography.fontFamily": str,
}

COLOR_PATTERN = re.compile(
    r"^#(?:[A-Fa-f0-9]{3}|[A-Fa-f0-9]{6})$|^rgba?\(.*\)$|^hsla?\(.*\)$",
)

# Short names templates use, mapped to flattened theme paths
BUNDLE_ALIASES: dict[str, str] = {
    "background": "colors.background",
    "backgroundSecondary": "colors.backgroundSecondary",
    "surface": "colors.surface",
    "primary": "colors.primary",
    "secondary": "colors.secondary",
    "accent": "colors.accent",
    "textColor": "colors.textPrimary",
    "textSecondary": "colors.textSecondary",
    "textAccent": "colors.textAccent",
    "borderColor": "colors.borderPrimary",
    "borderSecondary": "colors.borderSecondary",
    "sectionBackground": "colors.sectionBackground",
    "sectionBorder": "colors.sectionBorder",
    "borderWidth": "borders.width.normal",
    "borderRadius": "borders.radius.md",
    "fontFamily": "typography.fontFamily",
    "fontSize": "typography.fontSize.body",
    "titleSize": "typography.fontSize.title",
    "subtitleSize": "typography.fontSize.subtitle",
    "captionSize": "typography.fontSize.caption",
    "sectionNameSize": "typography.fontSize.sectionName",
    "itemNameSize": "typography.fontSize.itemName",
    "shadow": "shadows.md",
    "transitionDuration": "animations.duration.normal",
    "transitionEasing": "animations.easing.easeInOut",
}


def get_nested(data: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts; None when any step is missing."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def flatten(value: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested dicts into dotted-path keys, depth-first.

    Lists are kept intact as single leaves.

    Examples:
        >>> flatten({"colors": {"primary": "#fff"}, "stops": [1, 2]})
        {'colors.primary': '#fff', 'stops': [1, 2]}
    """
    flat: dict[str, Any] = {}
    for key, item in value.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(item, dict):
            flat.update(flatten(item, full_key))
        else:
            flat[full_key] = copy.deepcopy(item)
    return flat


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of target with source merged over it."""
    result = copy.deepcopy(target)
    for key, value in source.items():
        if isinstance(value, dict):
            result[key] = deep_merge(result.get(key) or {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _walk_colors(colors: Any, prefix: str, errors: list[str]) -> None:
    if isinstance(colors, dict):
        for key, value in colors.items():
            _walk_colors(value, f"{prefix}.{key}", errors)
    elif isinstance(colors, str) and not COLOR_PATTERN.match(colors.strip()):
        errors.append(f"invalid color at {prefix}: {colors!r}")


def validate_theme(config: dict[str, Any]) -> list[str]:
    """Return every violation in a theme config (empty when valid)."""
    if not isinstance(config, dict):
        return ["theme config must be a mapping"]

    errors: list[str] = []
    for path, expected in REQUIRED_FIELDS.items():
        value = get_nested(config, path)
        if value is None:
            errors.append(f"missing required field: {path}")
        elif not isinstance(value, expected):
            errors.append(f"wrong type at {path}: expected {expected.__name__}")

    colors = config.get("colors")
    if colors is not None and not isinstance(colors, dict):
        errors.append("colors must be a mapping")
    else:
        _walk_colors(colors or {}, "colors", errors)

    return errors


class ThemeRegistry:
    """Registry of named themes with one active theme.

    The flattened variable map of the active theme is rebuilt on every
    switch; it is never read for a theme other than the active one.
    """

    def __init__(self, load_builtin: bool = True, default_theme: str = DEFAULT_THEME) -> None:
        """Initialize the registry.

        Args:
            load_builtin: Register the packaged themes (classic, dark, minimal)
            default_theme: Theme activated when the active one is removed
        """
        self._themes: dict[str, Theme] = {}
        self._active: Theme | None = None
        self._variables: dict[str, Any] = {}
        self.default_theme = default_theme

        if load_builtin:
            self.load_builtin_themes()
            if default_theme in self._themes:
                self.set_active(default_theme)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        theme_id: str,
        config: dict[str, Any],
        replace: bool = False,
        category: str = "custom",
    ) -> Theme:
        """Validate and store a theme.

        Raises:
            RegistrationError: With every violated path; nothing is stored
        """
        errors = validate_theme(config)
        if theme_id in self._themes and not replace:
            errors.append(f"theme id already registered: {theme_id}")
        if errors:
            raise RegistrationError(theme_id, errors)

        theme = Theme.from_config(theme_id, config, category=category)
        self._themes[theme_id] = theme

        # Keep the active flattened map in sync when its theme is replaced
        if self._active is not None and self._active.id == theme_id:
            self._activate(theme)

        logger.debug("Registered theme %s (%s)", theme_id, theme.category)
        return theme

    def load_builtin_themes(self) -> list[str]:
        """Register the themes packaged with chartsmith."""
        loaded: list[str] = []
        package = resources.files("chartsmith.themes") / "builtin"
        for entry in sorted(package.iterdir(), key=lambda e: e.name):
            if not entry.name.endswith((".yaml", ".yml")):
                continue
            data = yaml.safe_load(entry.read_text(encoding="utf-8")) or {}
            theme_id = data.pop("id", entry.name.rsplit(".", 1)[0])
            self.register(theme_id, data, replace=True, category="builtin")
            loaded.append(theme_id)
        return loaded

    def load_directory(self, directory: Path) -> list[str]:
        """Register every *.yaml theme in a directory.

        Invalid files are logged and skipped so one bad file does not hide the rest.
        """
        loaded: list[str] = []
        if not directory.is_dir():
            logger.warning("Theme directory not found: %s", directory)
            return loaded

        for path in sorted(directory.glob("*.y*ml")):
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                theme_id = data.pop("id", path.stem)
                self.register(theme_id, data, replace=True)
                loaded.append(theme_id)
            except (RegistrationError, yaml.YAMLError) as e:
                logger.warning("Skipping theme file %s: %s", path, e)
        return loaded

    # =========================================================================
    # Lookup and activation
    # =========================================================================

    def get(self, theme_id: str) -> Theme:
        """Get a registered theme.

        Raises:
            NotFoundError: If the id is not registered
        """
        theme = self._themes.get(theme_id)
        if theme is None:
            raise NotFoundError("theme", theme_id, sorted(self._themes))
        return theme

    def has(self, theme_id: str) -> bool:
        return theme_id in self._themes

    def set_active(self, theme_id: str) -> Theme:
        """Switch the active theme and rebuild its flattened variables."""
        theme = self.get(theme_id)
        self._activate(theme)
        logger.debug("Active theme: %s", theme_id)
        return theme

    def _activate(self, theme: Theme) -> None:
        self._active = theme
        self._variables = flatten(theme.styles)

    @property
    def active(self) -> Theme | None:
        return self._active

    @property
    def variables(self) -> dict[str, Any]:
        """Flattened variables of the active theme (a copy)."""
        return copy.deepcopy(self._variables)

    def variable(self, path: str) -> Any:
        """Look up one flattened variable of the active theme."""
        return copy.deepcopy(self._variables.get(path))

    # =========================================================================
    # Data application
    # =========================================================================

    def resolve_custom(self, config: dict[str, Any]) -> Theme:
        """Validate an inline theme without registering it.

        The id is derived from the config content so equal configs share cache keys.
        """
        theme_id = f"custom:{stable_hash(config, length=12)}"
        errors = validate_theme(config)
        if errors:
            raise RegistrationError(theme_id, errors)
        return Theme.from_config(theme_id, config, category="custom")

    def build_bundle(self, theme: Theme) -> dict[str, Any]:
        """Build the dereferenced bundle templates see as "theme".

        Contains every flattened dotted path, the nested groups themselves and
        short aliases such as "background" or "textColor".
        """
        flat = flatten(theme.styles)
        bundle: dict[str, Any] = {"id": theme.id, "name": theme.name}
        bundle.update(copy.deepcopy(theme.styles))
        bundle.update(flat)
        for alias, path in BUNDLE_ALIASES.items():
            if path in flat:
                bundle[alias] = flat[path]
        return bundle

    def apply_to_data(
        self,
        data: dict[str, Any],
        theme_id: str | None = None,
        theme: Theme | None = None,
    ) -> dict[str, Any]:
        """Return a deep copy of data with a "theme" bundle attached.

        Args:
            data: Caller's data tree (never mutated)
            theme_id: Registered theme to apply (active theme when None)
            theme: Theme object to apply directly (wins over theme_id)

        Raises:
            NotFoundError: If theme_id is unknown
        """
        if theme is None:
            theme = self.get(theme_id) if theme_id else self._active

        themed = copy.deepcopy(data)
        if theme is None:
            logger.debug("No active theme; data passed through without a theme bundle")
            return themed

        themed["theme"] = self.build_bundle(theme)
        return themed

    # =========================================================================
    # Variants, import/export, removal
    # =========================================================================

    def create_variant(
        self,
        base_id: str,
        overrides: dict[str, Any],
        variant_id: str,
    ) -> Theme:
        """Register a theme derived from base_id with overrides deep-merged in."""
        base = self.get(base_id)
        config = deep_merge(base.to_config(), overrides)
        config["name"] = overrides.get("name", f"{base.name} variant")
        config["base_theme"] = base_id
        config["category"] = "variant"
        return self.register(variant_id, config, replace=True, category="variant")

    def export(self, theme_id: str) -> dict[str, Any]:
        """Export a theme as a registration config (with id)."""
        theme = self.get(theme_id)
        exported = theme.to_config()
        exported["id"] = theme.id
        exported["registered_at"] = theme.registered_at.isoformat()
        return exported

    def import_theme(self, data: dict[str, Any], theme_id: str | None = None) -> str:
        """Register a previously exported theme; returns the id used."""
        data = dict(data)
        data.pop("registered_at", None)
        data.pop("category", None)
        exported_id = data.pop("id", None)
        resolved_id = theme_id or exported_id or f"imported:{stable_hash(data, length=8)}"
        self.register(resolved_id, data, replace=True, category="imported")
        return resolved_id

    def remove(self, theme_id: str) -> bool:
        """Remove a theme; the default theme becomes active if the active one is removed."""
        removed = self._themes.pop(theme_id, None)
        if removed is None:
            return False

        if self._active is not None and self._active.id == theme_id:
            if self.default_theme in self._themes:
                self.set_active(self.default_theme)
            else:
                self._active = None
                self._variables = {}
        return True

    # =========================================================================
    # Introspection
    # =========================================================================

    def list_themes(self) -> list[dict[str, Any]]:
        """Describe every registered theme with a small color preview."""
        themes = []
        for theme in self._themes.values():
            themes.append({
                "id": theme.id,
                "name": theme.name,
                "description": theme.description,
                "category": theme.category,
                "active": theme is self._active,
                "preview": {
                    "primary": theme.colors.get("primary"),
                    "background": theme.colors.get("background"),
                    "text": theme.colors.get("textPrimary"),
                },
            })
        return themes

    def stats(self) -> dict[str, Any]:
        """Registry counters."""
        categories: dict[str, int] = {}
        for theme in self._themes.values():
            categories[theme.category] = categories.get(theme.category, 0) + 1
        return {
            "total_themes": len(self._themes),
            "by_category": categories,
            "active_theme": self._active.id if self._active else None,
            "theme_variables": len(self._variables),
        }
