"""Theme entity."""

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

STYLE_GROUPS = ("colors", "typography", "spacing", "borders", "shadows", "animations")


@dataclass
class Theme:
    """A named style bundle.

    Attributes:
        id: Registry identifier
        name: Display name
        description: Free text
        category: builtin, custom, variant or imported
        styles: Nested style groups (colors, typography, spacing, ...)
        base_theme: Theme this one was derived from (variants only)
        registered_at: Registration timestamp (UTC)
    """

    id: str
    name: str
    description: str = ""
    category: str = "custom"
    styles: dict[str, Any] = field(default_factory=dict)
    base_theme: str | None = None
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_config(cls, theme_id: str, config: dict[str, Any], category: str = "custom") -> "Theme":
        """Build a theme from a registration config (deep-copied)."""
        config = copy.deepcopy(config)
        styles = {key: value for key, value in config.items() if key in STYLE_GROUPS}
        return cls(
            id=theme_id,
            name=config.get("name", theme_id),
            description=config.get("description", ""),
            category=config.get("category", category),
            styles=styles,
            base_theme=config.get("base_theme"),
        )

    def to_config(self) -> dict[str, Any]:
        """Registration config equivalent of this theme (deep-copied)."""
        config: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "category": self.category,
        }
        if self.base_theme:
            config["base_theme"] = self.base_theme
        config.update(copy.deepcopy(self.styles))
        return config

    @property
    def colors(self) -> dict[str, Any]:
        return self.styles.get("colors", {})
