"""
Grid layout — arranges a sequence into rows of a fixed number of cells.

The final row is padded with empty cells when the item count is not a
multiple of the column count. Each cell carries its 1-based position and
whether it is the first or last item, for templates that style those.

    for row in grid_rows(pages, cols=3):
        ...
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence


@dataclass
class GridCell:
    data: Any
    index: int
    first: bool
    last: bool


def grid_rows(items: Sequence, cols: int = 4) -> List[List[Optional[GridCell]]]:
    """Split items into rows of `cols` cells; padding cells are None."""
    if cols < 1:
        raise ValueError(f"cols must be at least 1, got {cols}")
    items = list(items)
    cells = [
        GridCell(data=item, index=i, first=(i == 1), last=(i == len(items)))
        for i, item in enumerate(items, start=1)
    ]
    rows = [cells[i:i + cols] for i in range(0, len(cells), cols)]
    if rows and len(rows[-1]) < cols:
        rows[-1].extend([None] * (cols - len(rows[-1])))
    return rows


def render_grid(items: Sequence, cols: int, template: Callable[[GridCell], Any],
                empty: Any = "") -> List[List[Any]]:
    """grid_rows() with each cell passed through `template` and padding set to `empty`."""
    return [
        [empty if cell is None else template(cell) for cell in row]
        for row in grid_rows(items, cols)
    ]
