"""
Tests for the grid layout helper.
"""

import pytest

from layout.grid import GridCell, grid_rows, render_grid


class TestGridRows:
    def test_exact_multiple(self):
        rows = grid_rows(["a", "b", "c", "d"], cols=2)
        assert [[c.data for c in row] for row in rows] == [["a", "b"], ["c", "d"]]

    def test_last_row_padded(self):
        rows = grid_rows(range(5), cols=3)
        assert len(rows) == 2
        assert [c.data for c in rows[0]] == [0, 1, 2]
        assert rows[1][0].data == 3
        assert rows[1][1].data == 4
        assert rows[1][2] is None

    def test_fewer_items_than_columns(self):
        rows = grid_rows(["only"], cols=4)
        assert len(rows) == 1
        assert rows[0][0].data == "only"
        assert rows[0][1:] == [None, None, None]

    def test_empty(self):
        assert grid_rows([], cols=4) == []

    def test_default_four_columns(self):
        rows = grid_rows(range(8))
        assert len(rows) == 2
        assert all(len(row) == 4 for row in rows)

    def test_cell_positions(self):
        rows = grid_rows(["x", "y", "z"], cols=2)
        cells = [c for row in rows for c in row if c is not None]
        assert [c.index for c in cells] == [1, 2, 3]
        assert [c.first for c in cells] == [True, False, False]
        assert [c.last for c in cells] == [False, False, True]

    def test_duplicate_items_only_last_is_last(self):
        rows = grid_rows(["same", "same"], cols=4)
        assert rows[0][0].last is False
        assert rows[0][1].last is True

    def test_invalid_cols(self):
        with pytest.raises(ValueError):
            grid_rows([1, 2], cols=0)


class TestRenderGrid:
    def test_template_and_padding(self):
        rows = render_grid(["a", "b", "c"], 2, lambda cell: cell.data.upper(), empty="&nbsp;")
        assert rows == [["A", "B"], ["C", "&nbsp;"]]

    def test_template_receives_cells(self):
        seen = []
        render_grid([10, 20], 2, seen.append)
        assert seen == [GridCell(10, 1, True, False), GridCell(20, 2, False, True)]
