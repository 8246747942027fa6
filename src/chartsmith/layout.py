"""Document geometry added to prepared data before rendering.

Dimensions come from the request options first, then from the data tree,
then from the configured defaults. Sections without explicit geometry are
placed on a near-square grid below the title band.
"""

import math
from typing import Any

DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600

# Grid geometry, in user units
HEADER_HEIGHT = 72
MARGIN = 16
GAP = 12

_GEOMETRY = ("x", "y", "w", "h")


def _dimension(option: int | None, data: dict[str, Any], key: str, default: int) -> int:
    if option is not None:
        return option
    value = data.get(key)
    if isinstance(value, int | float) and not isinstance(value, bool) and value > 0:
        return int(value)
    return default


def grid_cells(count: int, width: int, height: int) -> list[dict[str, int]]:
    """Cell geometry for count sections, row-major.

    Uses ceil(sqrt(count)) columns; cells never shrink below 1x1.
    """
    if count <= 0:
        return []
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    cell_w = max((width - 2 * MARGIN - (cols - 1) * GAP) // cols, 1)
    cell_h = max((height - HEADER_HEIGHT - MARGIN - (rows - 1) * GAP) // rows, 1)

    cells = []
    for i in range(count):
        row, col = divmod(i, cols)
        cells.append({
            "x": MARGIN + col * (cell_w + GAP),
            "y": HEADER_HEIGHT + row * (cell_h + GAP),
            "w": cell_w,
            "h": cell_h,
        })
    return cells


def apply_layout(
    data: dict[str, Any],
    width: int | None = None,
    height: int | None = None,
    default_width: int = DEFAULT_WIDTH,
    default_height: int = DEFAULT_HEIGHT,
) -> dict[str, Any]:
    """Write width, height, viewBox and section grid geometry into data.

    Mutates and returns data; callers pass a copy they own.
    """
    w = _dimension(width, data, "width", default_width)
    h = _dimension(height, data, "height", default_height)
    data["width"] = w
    data["height"] = h
    data["viewBox"] = f"0 0 {w} {h}"

    sections = data.get("sections")
    if isinstance(sections, list):
        for section, cell in zip(sections, grid_cells(len(sections), w, h), strict=True):
            if isinstance(section, dict):
                for key in _GEOMETRY:
                    section.setdefault(key, cell[key])
    return data
