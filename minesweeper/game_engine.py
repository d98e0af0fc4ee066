from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple
import random
from collections import deque


class InvalidConfiguration(ValueError):
    """Board dimensions or mine count cannot produce a playable board."""


class TileState(str, Enum):
    HIDDEN = "hidden"
    REVEALED = "revealed"
    FLAGGED = "flagged"


class GameStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    WON = "won"
    LOST = "lost"


@dataclass
class Tile:
    row: int
    col: int
    is_mine: bool = False
    state: TileState = TileState.HIDDEN
    adjacent_mines: int = 0


@dataclass
class Board:
    rows: int
    cols: int
    num_mines: int
    tiles: List[Tile] = field(default_factory=list)
    revealed_count: int = 0
    status: GameStatus = GameStatus.IN_PROGRESS
    moves_count: int = 0

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def tile(self, row: int, col: int) -> Tile:
        return self.tiles[index(row, col, self.cols)]

    @property
    def safe_total(self) -> int:
        return self.rows * self.cols - self.num_mines


def index(row: int, col: int, cols: int) -> int:
    return row * cols + col


def _neighbors(r: int, c: int, rows: int, cols: int):
    for nr in range(max(0, r - 1), min(rows, r + 2)):
        for nc in range(max(0, c - 1), min(cols, c + 2)):
            if nr == r and nc == c:
                continue
            yield nr, nc


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate(rows: int, cols: int, num_mines: int) -> None:
    if not (_is_int(rows) and _is_int(cols)) or rows < 1 or cols < 1:
        raise InvalidConfiguration("invalid_dimensions")
    if not _is_int(num_mines) or num_mines < 0:
        raise InvalidConfiguration("invalid_mine_count")
    if num_mines >= rows * cols:
        raise InvalidConfiguration("too_many_mines_for_board")


def _build_board(rows: int, cols: int, mines: set[int]) -> Board:
    tiles = [Tile(r, c, is_mine=index(r, c, cols) in mines) for r in range(rows) for c in range(cols)]
    for t in tiles:
        t.adjacent_mines = sum(
            1 for nr, nc in _neighbors(t.row, t.col, rows, cols) if index(nr, nc, cols) in mines
        )
    return Board(rows, cols, len(mines), tiles)


def new_game(rows: int, cols: int, num_mines: int, rng_seed: int | None = None) -> Board:
    """Create a board with ``num_mines`` mines placed uniformly at random.

    Mines are placed up front, so the very first reveal can hit one.
    """
    _validate(rows, cols, num_mines)
    rng = random.Random(rng_seed)
    mines = set(rng.sample(range(rows * cols), num_mines))
    return _build_board(rows, cols, mines)


def board_from_mines(rows: int, cols: int, mines: Iterable[Tuple[int, int]]) -> Board:
    """Create a board with mines at exactly the given ``(row, col)`` positions."""
    _validate(rows, cols, 0)
    placed = set()
    for r, c in mines:
        if not (0 <= r < rows and 0 <= c < cols):
            raise InvalidConfiguration("mine_out_of_bounds")
        placed.add(index(r, c, cols))
    _validate(rows, cols, len(placed))
    return _build_board(rows, cols, placed)


def flags_total(b: Board) -> int:
    return sum(1 for t in b.tiles if t.state == TileState.FLAGGED)


def is_win(b: Board) -> bool:
    return b.revealed_count == b.safe_total


def _result(b: Board, hit_mine: bool = False, cleared: int = 0) -> Dict[str, Any]:
    return {
        "hit_mine": hit_mine,
        "cleared_cells": cleared,
        "status_after": b.status.value,
        "revealed_total": b.revealed_count,
        "flags_total": flags_total(b),
    }


def apply_reveal(b: Board, row: int, col: int) -> Tuple[Board, Dict[str, Any]]:
    if b.status != GameStatus.IN_PROGRESS or not b.in_bounds(row, col):
        return b, _result(b)
    start = b.tile(row, col)
    if start.state != TileState.HIDDEN:
        return b, _result(b)

    b.moves_count += 1
    if start.is_mine:
        for t in b.tiles:
            if t.is_mine:
                t.state = TileState.REVEALED
        b.status = GameStatus.LOST
        return b, _result(b, hit_mine=True)

    cleared = 0
    start.state = TileState.REVEALED
    q = deque([start])
    while q:
        t = q.pop()
        cleared += 1
        if t.adjacent_mines != 0:
            continue
        for nr, nc in _neighbors(t.row, t.col, b.rows, b.cols):
            n = b.tile(nr, nc)
            # marking on push keeps each tile in the worklist at most once
            if n.state == TileState.HIDDEN and not n.is_mine:
                n.state = TileState.REVEALED
                q.append(n)
    b.revealed_count += cleared
    if is_win(b):
        b.status = GameStatus.WON
    return b, _result(b, cleared=cleared)


def apply_flag(b: Board, row: int, col: int) -> Tuple[Board, Dict[str, Any]]:
    if b.status != GameStatus.IN_PROGRESS or not b.in_bounds(row, col):
        return b, _result(b)
    t = b.tile(row, col)
    if t.state == TileState.REVEALED:
        return b, _result(b)
    t.state = TileState.HIDDEN if t.state == TileState.FLAGGED else TileState.FLAGGED
    b.moves_count += 1
    return b, _result(b)


def _cell_view(t: Tile) -> str:
    if t.state == TileState.FLAGGED:
        return "F"
    if t.state == TileState.HIDDEN:
        return "H"
    # revealed mines only exist once the game is lost
    return "M" if t.is_mine else str(t.adjacent_mines)


def to_client_view(b: Board) -> List[List[str]]:
    return [[_cell_view(b.tile(r, c)) for c in range(b.cols)] for r in range(b.rows)]


_ASCII = {"H": "#", "F": "F", "M": "*", "0": "."}


def render_ascii(b: Board) -> str:
    return "\n".join(" ".join(_ASCII.get(cell, cell) for cell in row) for row in to_client_view(b))
