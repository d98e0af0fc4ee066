import os
import logging
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from dotenv import load_dotenv
import uvicorn

from minesweeper.difficulty import DIFFICULTIES, resolve_difficulty
from minesweeper.game_engine import InvalidConfiguration
from minesweeper.sessions import InMemorySessions

load_dotenv(dotenv_path=Path('.env.local'))

API_BASE = "/api/minesweeper"

logger = logging.getLogger("uvicorn.error")

MAX_BOARD_SIDE = 40


def env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def env_seed() -> Optional[int]:
    raw = os.getenv("MINESWEEPER_RNG_SEED")
    return int(raw) if raw else None


class StartBody(BaseModel):
    difficulty: Optional[str] = None
    rows: Optional[int] = Field(None, ge=1, le=MAX_BOARD_SIDE)
    cols: Optional[int] = Field(None, ge=1, le=MAX_BOARD_SIDE)
    num_mines: Optional[int] = Field(None, ge=0, le=MAX_BOARD_SIDE * MAX_BOARD_SIDE)


class MoveBody(BaseModel):
    row: int
    col: int


def create_app(sessions: Optional[InMemorySessions] = None) -> FastAPI:
    app = FastAPI(title="Minesweeper Service", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    app.state.sessions = sessions or InMemorySessions()

    @app.on_event("startup")
    async def _log_config():
        logger.info(
            f"[minesweeper] TRUST_X_USER_ID={int(env_flag('TRUST_X_USER_ID', '1'))} "
            f"ALLOW_ANON={int(env_flag('ALLOW_ANON', '1'))} "
            f"DEFAULT_DIFFICULTY={os.getenv('MINESWEEPER_DEFAULT_DIFFICULTY', 'easy')} "
            f"RNG_SEED={os.getenv('MINESWEEPER_RNG_SEED') or '-'}"
        )

    def get_user_id(req: Request) -> str:
        uid = req.headers.get("X-User-Id")
        if uid and env_flag("TRUST_X_USER_ID", "1"):
            return uid
        if env_flag("ALLOW_ANON", "1"):
            return os.getenv("DEFAULT_USER_ID", "local-user")
        logger.warning("[minesweeper] get_user_id missing user id")
        raise HTTPException(status_code=401, detail="missing user id")

    def board_config(body: StartBody):
        if body.difficulty:
            return resolve_difficulty(body.difficulty)
        custom = (body.rows, body.cols, body.num_mines)
        if all(v is None for v in custom):
            return resolve_difficulty(os.getenv("MINESWEEPER_DEFAULT_DIFFICULTY", "easy"))
        if any(v is None for v in custom):
            raise ValueError("incomplete_board_config")
        return custom

    @app.get(f"{API_BASE}/difficulties")
    def difficulties():
        return {
            name: {"rows": rows, "cols": cols, "num_mines": mines}
            for name, (rows, cols, mines) in DIFFICULTIES.items()
        }

    @app.post(f"{API_BASE}/start")
    def start_game(body: Optional[StartBody] = None, user_id: str = Depends(get_user_id)):
        try:
            rows, cols, num_mines = board_config(body or StartBody())
            with app.state.sessions.lock:
                game = app.state.sessions.start_game(user_id, rows, cols, num_mines, rng_seed=env_seed())
                resp = app.state.sessions.to_client(game) | {"game_id": user_id}
        except InvalidConfiguration as e:
            logger.info(f"[minesweeper] rejected board user_id={user_id} reason={e}")
            raise HTTPException(status_code=400, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return resp

    @app.get(f"{API_BASE}/state")
    def get_state(user_id: str = Depends(get_user_id)):
        with app.state.sessions.lock:
            game = app.state.sessions.get_game(user_id)
            if not game:
                raise HTTPException(status_code=404, detail="no game")
            return app.state.sessions.to_client(game) | {"game_id": user_id}

    @app.post(f"{API_BASE}/reveal")
    def reveal(body: MoveBody, user_id: str = Depends(get_user_id)):
        try:
            with app.state.sessions.lock:
                game, move = app.state.sessions.reveal(user_id, body.row, body.col)
                resp = app.state.sessions.to_client(game) | {"game_id": user_id}
        except KeyError:
            raise HTTPException(status_code=404, detail="no game")
        resp["last_move"] = {
            "row": move["row"],
            "col": move["col"],
            "hit_mine": move["hit_mine"],
            "cleared_cells": move["cleared_cells"],
        }
        return resp

    @app.post(f"{API_BASE}/flag")
    def flag(body: MoveBody, user_id: str = Depends(get_user_id)):
        try:
            with app.state.sessions.lock:
                game, _move = app.state.sessions.flag(user_id, body.row, body.col)
                return app.state.sessions.to_client(game) | {"game_id": user_id}
        except KeyError:
            raise HTTPException(status_code=404, detail="no game")

    @app.post(f"{API_BASE}/abandon")
    def abandon(user_id: str = Depends(get_user_id)):
        try:
            with app.state.sessions.lock:
                game, _move = app.state.sessions.abandon(user_id)
                return app.state.sessions.to_client(game) | {"game_id": user_id}
        except KeyError:
            raise HTTPException(status_code=404, detail="no game")

    @app.get(f"{API_BASE}/stats")
    def get_stats(user_id: str = Depends(get_user_id)):
        return app.state.sessions.get_stats(user_id)

    return app


app = create_app()


def serve() -> None:
    uvicorn.run(
        "app.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
