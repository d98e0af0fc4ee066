from __future__ import annotations

from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, Optional, Tuple
import logging

from .game_engine import (
    Board,
    GameStatus,
    new_game,
    apply_reveal as engine_reveal,
    apply_flag as engine_flag,
    flags_total,
    to_client_view,
)

logger = logging.getLogger(__name__)

ACTIVE = GameStatus.IN_PROGRESS.value
ABANDONED = "abandoned"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ms_between(start: Optional[datetime], end: datetime) -> Optional[int]:
    if start is None:
        return None
    return int((end - start).total_seconds() * 1000)


class InMemorySessions:
    """One game per player, kept in process memory.

    All public methods take the same re-entrant lock, so a board is only ever
    touched by one request at a time. Callers that pair a move with its
    snapshot hold ``lock`` around both calls.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self.games: Dict[str, Dict[str, Any]] = {}
        self.moves: Dict[str, list[Dict[str, Any]]] = {}
        self.stats_totals: Dict[str, Dict[str, int]] = {}
        self.stats_by_option: Dict[str, Dict[str, Dict[str, Any]]] = {}

    @property
    def lock(self) -> RLock:
        return self._lock

    def _stats_key(self, rows: int, cols: int, num_mines: int) -> str:
        return f"{rows}x{cols}x{num_mines}"

    def _update_stats(self, user_id: str, game: Dict[str, Any], outcome: str) -> None:
        board: Board = game["board"]
        key = self._stats_key(board.rows, board.cols, board.num_mines)
        totals = self.stats_totals.setdefault(user_id, {"played": 0, "wins": 0, "losses": 0, "aborts": 0})
        option = self.stats_by_option.setdefault(user_id, {}).setdefault(
            key,
            {
                "rows": board.rows,
                "cols": board.cols,
                "num_mines": board.num_mines,
                "played": 0,
                "wins": 0,
                "losses": 0,
                "aborts": 0,
            },
        )
        counter = {"win": "wins", "loss": "losses", "abort": "aborts"}[outcome]
        for bucket in (totals, option):
            bucket["played"] += 1
            bucket[counter] += 1

    def _finish(self, user_id: str, game: Dict[str, Any], end_result: str, now: datetime) -> None:
        if game.get("finished_at") is not None:
            return
        game["finished_at"] = now
        game["end_result"] = end_result
        game["result_time_ms"] = _ms_between(game.get("first_reveal_at"), now)
        self._update_stats(user_id, game, end_result)
        logger.info(
            f"[minesweeper] game finished user_id={user_id} result={end_result} "
            f"moves={game['board'].moves_count} time_ms={game['result_time_ms']}"
        )

    def _log_move(self, user_id: str, game: Dict[str, Any], action: str, row: Optional[int],
                  col: Optional[int], result: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        log = self.moves.setdefault(user_id, [])
        last_ts = log[-1]["timestamp"] if log else game["created_at"]
        move = {
            "seq": len(log) + 1,
            "action": action,
            "row": row,
            "col": col,
            "timestamp": now,
            **result,
            "ms_since_game_start": _ms_between(game.get("first_reveal_at"), now),
            "ms_since_prev_move": _ms_between(last_ts, now),
        }
        log.append(move)
        game["updated_at"] = now
        return move

    def get_game(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.games.get(user_id)

    def _require(self, user_id: str) -> Dict[str, Any]:
        game = self.games.get(user_id)
        if not game:
            raise KeyError("game_not_found")
        return game

    def start_game(
        self,
        user_id: str,
        rows: int,
        cols: int,
        num_mines: int,
        rng_seed: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            board = new_game(rows, cols, num_mines, rng_seed=rng_seed)
            now = _now()
            existing = self.games.get(user_id)
            if existing and existing["status"] == ACTIVE:
                self._finish(user_id, existing, "abort", now)
            game = {
                "status": board.status.value,
                "board": board,
                "created_at": now,
                "updated_at": now,
                "first_reveal_at": None,
                "finished_at": None,
                "result_time_ms": None,
                "end_result": None,
            }
            self.games[user_id] = game
            self.moves[user_id] = []
            logger.info(f"[minesweeper] game started user_id={user_id} board={rows}x{cols} mines={num_mines}")
            return game

    def reveal(self, user_id: str, row: int, col: int) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        with self._lock:
            game = self._require(user_id)
            board: Board = game["board"]
            moves_before = board.moves_count
            if game["status"] == ACTIVE:
                board, result = engine_reveal(board, row, col)
            else:
                result = {"hit_mine": False, "cleared_cells": 0, "status_after": game["status"],
                          "revealed_total": board.revealed_count, "flags_total": flags_total(board)}
            now = _now()
            if board.moves_count != moves_before and game.get("first_reveal_at") is None:
                game["first_reveal_at"] = now
            if game["status"] == ACTIVE:
                game["status"] = board.status.value
                if board.status == GameStatus.WON:
                    self._finish(user_id, game, "win", now)
                elif board.status == GameStatus.LOST:
                    self._finish(user_id, game, "loss", now)
            move = self._log_move(user_id, game, "reveal", row, col, result, now)
            return game, move

    def flag(self, user_id: str, row: int, col: int) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        with self._lock:
            game = self._require(user_id)
            board: Board = game["board"]
            if game["status"] == ACTIVE:
                board, result = engine_flag(board, row, col)
            else:
                result = {"hit_mine": False, "cleared_cells": 0, "status_after": game["status"],
                          "revealed_total": board.revealed_count, "flags_total": flags_total(board)}
            move = self._log_move(user_id, game, "flag", row, col, result, _now())
            return game, move

    def abandon(self, user_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        with self._lock:
            game = self._require(user_id)
            board: Board = game["board"]
            now = _now()
            if game["status"] == ACTIVE:
                game["status"] = ABANDONED
                self._finish(user_id, game, "abort", now)
            result = {"hit_mine": False, "cleared_cells": 0, "status_after": game["status"],
                      "revealed_total": board.revealed_count, "flags_total": flags_total(board)}
            move = self._log_move(user_id, game, "abandon", None, None, result, now)
            return game, move

    def elapsed_seconds(self, game: Dict[str, Any]) -> int:
        with self._lock:
            if game.get("result_time_ms") is not None:
                return game["result_time_ms"] // 1000
            if game.get("first_reveal_at") is None or game.get("finished_at") is not None:
                return 0
            return int((_now() - game["first_reveal_at"]).total_seconds())

    def get_stats(self, user_id: str) -> Dict[str, Any]:
        with self._lock:
            totals = self.stats_totals.get(user_id) or {"played": 0, "wins": 0, "losses": 0, "aborts": 0}
            by_option = [
                {"key": key, **opt, "winPct": _win_pct(opt)}
                for key, opt in (self.stats_by_option.get(user_id) or {}).items()
            ]
            return {"totals": {**totals, "winPct": _win_pct(totals)}, "byOption": by_option}

    def to_client(self, game: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            board: Board = game["board"]
            flags = flags_total(board)
            return {
                "status": game["status"],
                "board": to_client_view(board),
                "rows": board.rows,
                "cols": board.cols,
                "num_mines": board.num_mines,
                "moves_count": board.moves_count,
                "flags_total": flags,
                "mines_remaining": board.num_mines - flags,
                "revealed_total": board.revealed_count,
                "elapsed_seconds": self.elapsed_seconds(game),
                "end_result": game.get("end_result"),
            }


def _win_pct(counts: Dict[str, Any]) -> float:
    denom = counts["wins"] + counts["losses"] + counts["aborts"]
    return float(counts["wins"]) / denom if denom > 0 else 0.0
