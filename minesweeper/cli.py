from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, List, Optional, TextIO

from .difficulty import DIFFICULTIES, resolve_difficulty
from .game_engine import (
    Board,
    GameStatus,
    InvalidConfiguration,
    new_game,
    apply_reveal,
    apply_flag,
    render_ascii,
)

logger = logging.getLogger(__name__)

HELP = "commands: r ROW COL (reveal), f ROW COL (flag), q (quit)"


def play(board: Board, lines: Iterable[str], out: TextIO) -> Board:
    """Drive ``board`` from text commands until the game ends or input runs out."""
    print(render_ascii(board), file=out)
    for line in lines:
        parts = line.split()
        if not parts:
            continue
        cmd = parts[0].lower()
        if cmd in ("q", "quit"):
            break
        if cmd not in ("r", "f") or len(parts) != 3:
            print(HELP, file=out)
            continue
        try:
            row, col = int(parts[1]), int(parts[2])
        except ValueError:
            print(HELP, file=out)
            continue
        if cmd == "r":
            board, result = apply_reveal(board, row, col)
        else:
            board, result = apply_flag(board, row, col)
        logger.debug(f"[minesweeper] {cmd} {row} {col} -> {result}")
        print(render_ascii(board), file=out)
        if board.status != GameStatus.IN_PROGRESS:
            break
    if board.status == GameStatus.WON:
        print("Mines Cleared!", file=out)
    elif board.status == GameStatus.LOST:
        print("Game Over!", file=out)
    return board


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Play minesweeper in the terminal")
    parser.add_argument('--difficulty', type=str, default='easy', choices=sorted(DIFFICULTIES))
    parser.add_argument('--rows', type=int, default=None)
    parser.add_argument('--cols', type=int, default=None)
    parser.add_argument('--mines', type=int, default=None)
    parser.add_argument('--seed', type=int, default=-1, help='RNG seed; <0 uses OS entropy')
    parser.add_argument('--log-level', type=str, default='WARNING')
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    rows, cols, mines = resolve_difficulty(args.difficulty)
    rows = args.rows if args.rows is not None else rows
    cols = args.cols if args.cols is not None else cols
    mines = args.mines if args.mines is not None else mines
    try:
        board = new_game(rows, cols, mines, rng_seed=(None if args.seed < 0 else args.seed))
    except InvalidConfiguration as e:
        print(f"invalid board: {e}", file=sys.stderr)
        return 2

    print(HELP)
    board = play(board, sys.stdin, sys.stdout)
    return 0 if board.status == GameStatus.WON else 1


if __name__ == '__main__':
    sys.exit(main())
