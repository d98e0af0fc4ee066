import copy

import pytest
from minesweeper.game_engine import (
    GameStatus,
    InvalidConfiguration,
    TileState,
    apply_flag,
    apply_reveal,
    board_from_mines,
    index,
    new_game,
    render_ascii,
    to_client_view,
)


def mine_positions(b):
    return {(t.row, t.col) for t in b.tiles if t.is_mine}


def revealed_positions(b):
    return {(t.row, t.col) for t in b.tiles if t.state == TileState.REVEALED}


@pytest.mark.parametrize("rows,cols,mines", [(1, 1, 0), (1, 5, 4), (9, 9, 10), (16, 16, 40), (24, 24, 99), (3, 7, 20)])
def test_new_game_places_exact_mine_count(rows, cols, mines):
    b = new_game(rows, cols, mines, rng_seed=11)
    assert len(b.tiles) == rows * cols
    assert len(mine_positions(b)) == mines
    assert b.status == GameStatus.IN_PROGRESS
    assert b.revealed_count == 0
    assert all(t.state == TileState.HIDDEN for t in b.tiles)


def test_new_game_same_seed_same_layout():
    assert mine_positions(new_game(9, 9, 10, rng_seed=4)) == mine_positions(new_game(9, 9, 10, rng_seed=4))


@pytest.mark.parametrize(
    "rows,cols,mines,reason",
    [
        (5, 5, 25, "too_many_mines_for_board"),
        (2, 2, 9, "too_many_mines_for_board"),
        (0, 5, 0, "invalid_dimensions"),
        (5, -1, 0, "invalid_dimensions"),
        (5, 5, -1, "invalid_mine_count"),
    ],
)
def test_new_game_invalid_configuration(rows, cols, mines, reason):
    with pytest.raises(InvalidConfiguration) as exc:
        new_game(rows, cols, mines)
    assert str(exc.value) == reason


def test_board_from_mines_rejects_out_of_bounds_mine():
    with pytest.raises(InvalidConfiguration):
        board_from_mines(3, 3, [(3, 0)])


def test_adjacent_counts_match_neighbour_mines():
    mines = {(0, 0), (0, 3), (2, 1), (3, 3), (1, 4)}
    b = board_from_mines(4, 5, mines)
    for t in b.tiles:
        expected = sum(
            1
            for dr in (-1, 0, 1)
            for dc in (-1, 0, 1)
            if (dr or dc) and (t.row + dr, t.col + dc) in mines
        )
        assert t.adjacent_mines == expected, (t.row, t.col)


def test_center_mine_reveal_corner_does_not_cascade():
    b = board_from_mines(3, 3, [(1, 1)])
    assert all(t.adjacent_mines == 1 for t in b.tiles if not t.is_mine)
    b, res = apply_reveal(b, 0, 0)
    assert revealed_positions(b) == {(0, 0)}
    assert res["cleared_cells"] == 1
    assert b.tile(0, 0).adjacent_mines == 1
    assert b.status == GameStatus.IN_PROGRESS


def test_single_corner_mine_cascade_wins():
    b = board_from_mines(4, 4, [(0, 0)])
    b, res = apply_reveal(b, 3, 3)
    assert res["cleared_cells"] == 15
    assert b.revealed_count == 15
    assert b.status == GameStatus.WON
    assert b.tile(0, 0).state == TileState.HIDDEN


def test_zero_region_reveals_closure_only():
    # a wall of mines down column 2 splits the board in two
    b = board_from_mines(5, 5, [(r, 2) for r in range(5)])
    b, res = apply_reveal(b, 0, 0)
    assert revealed_positions(b) == {(r, c) for r in range(5) for c in (0, 1)}
    assert res["cleared_cells"] == 10
    assert b.status == GameStatus.IN_PROGRESS


def test_cascade_skips_flagged_tiles():
    b = board_from_mines(4, 4, [(0, 0)])
    b, _ = apply_flag(b, 3, 0)
    b, _ = apply_reveal(b, 3, 3)
    assert b.tile(3, 0).state == TileState.FLAGGED
    assert b.status == GameStatus.IN_PROGRESS
    b, _ = apply_flag(b, 3, 0)
    b, _ = apply_reveal(b, 3, 0)
    assert b.status == GameStatus.WON


def test_reveal_mine_loses_and_exposes_all_mines():
    b = board_from_mines(4, 4, [(0, 0), (3, 3), (0, 3)])
    b, _ = apply_reveal(b, 2, 0)
    b, _ = apply_flag(b, 3, 3)
    b, _ = apply_flag(b, 1, 1)
    before = {(t.row, t.col): t.state for t in b.tiles if not t.is_mine}
    revealed_before = b.revealed_count

    b, res = apply_reveal(b, 0, 3)
    assert res["hit_mine"] is True
    assert b.status == GameStatus.LOST
    assert all(t.state == TileState.REVEALED for t in b.tiles if t.is_mine)
    assert {(t.row, t.col): t.state for t in b.tiles if not t.is_mine} == before
    assert b.revealed_count == revealed_before


def test_last_safe_tile_wins():
    b = board_from_mines(2, 2, [(0, 0)])
    for r, c in [(0, 1), (1, 0)]:
        b, _ = apply_reveal(b, r, c)
        assert b.status == GameStatus.IN_PROGRESS
    b, _ = apply_reveal(b, 1, 1)
    assert b.status == GameStatus.WON


def test_mine_free_board_wins_on_first_reveal():
    b = new_game(3, 3, 0)
    b, _ = apply_reveal(b, 1, 1)
    assert b.status == GameStatus.WON
    assert b.revealed_count == 9


def test_flag_toggle_twice_restores_board():
    b = board_from_mines(3, 3, [(1, 1)])
    original = copy.deepcopy(b)
    b, res = apply_flag(b, 0, 2)
    assert b.tile(0, 2).state == TileState.FLAGGED
    assert res["flags_total"] == 1
    b, res = apply_flag(b, 0, 2)
    assert res["flags_total"] == 0
    assert [t.state for t in b.tiles] == [t.state for t in original.tiles]


def test_flags_have_no_cap():
    b = board_from_mines(3, 3, [(1, 1)])
    for r in (0, 2):
        for c in range(3):
            b, res = apply_flag(b, r, c)
    assert res["flags_total"] == 6


def test_flagged_tile_cannot_be_revealed():
    b = board_from_mines(3, 3, [(1, 1)])
    b, _ = apply_flag(b, 1, 1)
    snapshot = copy.deepcopy(b)
    b, res = apply_reveal(b, 1, 1)
    assert b == snapshot
    assert res["hit_mine"] is False


def test_cannot_flag_revealed_tile():
    b = board_from_mines(3, 3, [(1, 1)])
    b, _ = apply_reveal(b, 0, 0)
    snapshot = copy.deepcopy(b)
    b, _ = apply_flag(b, 0, 0)
    assert b == snapshot


def test_repeated_and_out_of_bounds_moves_are_noops():
    b = board_from_mines(3, 3, [(1, 1)])
    b, _ = apply_reveal(b, 0, 0)
    snapshot = copy.deepcopy(b)
    for row, col in [(0, 0), (-1, 0), (0, 3), (3, 0), (99, 99)]:
        b, res = apply_reveal(b, row, col)
        assert res["cleared_cells"] == 0
        b, _ = apply_flag(b, row, col)
    assert b == snapshot


@pytest.mark.parametrize("outcome", ["won", "lost"])
def test_operations_after_game_end_are_noops(outcome):
    b = board_from_mines(2, 2, [(1, 1)])
    if outcome == "won":
        for r, c in [(0, 0), (0, 1), (1, 0)]:
            b, _ = apply_reveal(b, r, c)
        assert b.status == GameStatus.WON
    else:
        b, _ = apply_reveal(b, 1, 1)
        assert b.status == GameStatus.LOST
    snapshot = copy.deepcopy(b)
    for r in range(2):
        for c in range(2):
            apply_reveal(b, r, c)
            apply_flag(b, r, c)
    assert b == snapshot


def test_client_view_hides_mines_while_in_progress():
    b = new_game(6, 6, 8, rng_seed=3)
    b, _ = apply_flag(b, *next((t.row, t.col) for t in b.tiles if t.is_mine))
    view = to_client_view(b)
    assert all(cell in ("H", "F") for row in view for cell in row)


def test_client_view_after_loss():
    b = board_from_mines(2, 3, [(0, 0)])
    b, _ = apply_reveal(b, 0, 1)
    b, _ = apply_reveal(b, 0, 0)
    assert to_client_view(b) == [["M", "1", "H"], ["H", "H", "H"]]


def test_render_ascii():
    b = board_from_mines(2, 3, [(0, 0)])
    b, _ = apply_flag(b, 1, 0)
    b, _ = apply_reveal(b, 0, 2)
    assert render_ascii(b) == "# 1 .\nF 1 ."


def test_tiles_are_stored_row_major():
    b = new_game(3, 4, 2, rng_seed=8)
    for r in range(3):
        for c in range(4):
            t = b.tiles[index(r, c, b.cols)]
            assert (t.row, t.col) == (r, c)
            assert b.tile(r, c) is t
