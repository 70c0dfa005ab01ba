"""
Tabular layout of record collections.
"""

from layout.grid import GridCell, grid_rows, render_grid

__all__ = ["GridCell", "grid_rows", "render_grid"]
