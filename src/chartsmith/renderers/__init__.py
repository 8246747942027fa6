"""Value formatting shared by the renderer and the patch builder."""

from chartsmith.renderers.filters import PRECISION, format_number, format_value, precision_for

__all__ = ["PRECISION", "format_number", "format_value", "precision_for"]
