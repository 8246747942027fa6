"""Exceptions raised by chartsmith registries and the render pipeline.

Registration problems are raised eagerly, when a template, partial or theme
is registered. Lookups of unknown identifiers raise NotFoundError at use.
Missing template variables and unresolvable patch targets are reported as
data (ValidationResult, ApplyFailure) and never raised.
"""


class ChartsmithError(Exception):
    """Base class for all chartsmith errors."""


class RegistrationError(ChartsmithError):
    """Raised when a template, partial or theme cannot be registered.

    Attributes:
        subject: Identifier of the rejected template/partial/theme
        errors: Every violation found, so callers can fix them in one pass
    """

    def __init__(self, subject: str, errors: list[str] | str) -> None:
        self.subject = subject
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__(f"Registration failed for '{subject}': {'; '.join(self.errors)}")


class NotFoundError(ChartsmithError):
    """Raised when an unregistered template or theme id is referenced."""

    def __init__(self, kind: str, identifier: str, available: list[str] | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        self.available = available or []
        message = f"{kind.capitalize()} not found: {identifier}"
        if self.available:
            message += f". Available: {self.available}"
        super().__init__(message)


class MarkupError(ChartsmithError):
    """Raised when rendered markup is not well-formed and cannot be patched."""
