"""Template definition entity."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class TemplateDefinition:
    """A registered template.

    Attributes:
        id: Registry identifier
        name: Display name
        category: Free-form grouping (e.g. "grid", "chart")
        description: Free text
        variables: Declared data paths; "prefix.*" requires prefix to be a mapping
        body: Template source
        partials: Template-local partials (name -> body)
        registered_at: Registration timestamp (UTC)
    """

    id: str
    name: str
    body: str
    category: str = "general"
    description: str = ""
    variables: list[str] = field(default_factory=list)
    partials: dict[str, str] = field(default_factory=dict)
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_config(cls, template_id: str, config: dict[str, Any]) -> "TemplateDefinition":
        """Build a definition from a registration config.

        "template" is accepted as an alias of "body".
        """
        return cls(
            id=template_id,
            name=config.get("name", template_id),
            body=config.get("body", config.get("template", "")),
            category=config.get("category", "general"),
            description=config.get("description", ""),
            variables=list(config.get("variables") or []),
            partials=dict(config.get("partials") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (body omitted)."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "variables": list(self.variables),
            "partials": sorted(self.partials),
            "size": len(self.body),
            "registered_at": self.registered_at.isoformat(),
        }
