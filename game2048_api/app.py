import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from game2048 import GameRules, InvalidDirectionError

from .auth import TokenAuthMiddleware, is_recent_timestamp, require_address, signature_message
from .config import default_config
from .rewards import RewardLedger, local_reward_factory
from .sessions import GameSession, SessionClosedError, SessionNotFoundError, SessionStore

logger = logging.getLogger(__name__)


class StartRequest(BaseModel):
    # Signatures are not verified here, so requests carrying one are refused
    model_config = ConfigDict(extra="forbid")

    address: str
    timestamp: Optional[int] = None


class MoveRequest(BaseModel):
    game_id: str
    direction: str


class GameRequest(BaseModel):
    game_id: str


def build_store(config: Dict[str, Any]) -> SessionStore:
    rules = GameRules.from_config(config.get("rules", {}))
    ledger = RewardLedger()
    return SessionStore(
        rules,
        local_reward_factory(ledger),
        leaderboard_size=config.get("leaderboard_size", 100),
        history_size=config.get("history_size", 200),
        closed_size=config.get("closed_size", 100),
    )


def create_app(config: Optional[Dict[str, Any]] = None, store: Optional[SessionStore] = None) -> FastAPI:
    config = config or default_config()
    store = store or build_store(config)

    app = FastAPI(
        title="2048 Game Session Server",
        description="Hosts 2048 games per player address and records finished games",
        version="1.0.0"
    )
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get("cors_origins", ["*"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if config.get("auth_token"):
        app.add_middleware(TokenAuthMiddleware, token=config["auth_token"])

    def lookup(game_id: str) -> GameSession:
        try:
            return store.get(game_id)
        except SessionNotFoundError:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Game {game_id} not found"
            )

    def closed(exc: SessionClosedError) -> HTTPException:
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "rules": store.rules.to_dict()}

    @app.get("/api/auth/message")
    async def auth_message(action: str, address: str, timestamp: int):
        """Text the wallet has to sign for ``action``"""
        address = require_address(address)
        return {"message": signature_message(action, address, timestamp)}

    @app.post("/api/game/start")
    async def start_game(body: StartRequest):
        address = require_address(body.address)
        if body.timestamp is not None and not is_recent_timestamp(body.timestamp):
            logger.warning(f"Rejected start for {address}: stale timestamp {body.timestamp}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Request timestamp is too old"
            )
        session = store.start(address)
        return {
            "success": True,
            "message": "Game started successfully",
            "game_id": session.game_id,
            "state": session.to_dict(),
        }

    @app.get("/api/game/leaderboard")
    async def leaderboard(limit: int = Query(10, ge=1, le=100)):
        return {
            "leaderboard": store.leaderboard(limit),
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/game/state/{address}")
    async def game_state_for_address(address: str):
        address = require_address(address)
        session = store.active_for(address)
        if session is None:
            return {
                "address": address,
                "is_active": False,
                "game_id": None,
            }
        return session.to_dict()

    @app.get("/api/game/{game_id}")
    async def game_state(game_id: str):
        return lookup(game_id).to_dict()

    @app.post("/api/game/move")
    async def move(body: MoveRequest):
        lookup(body.game_id)
        try:
            outcome = store.move(body.game_id, body.direction)
        except InvalidDirectionError:
            logger.warning(f"Rejected move for game {body.game_id}: bad direction {body.direction!r}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid move direction"
            )
        except SessionClosedError as exc:
            raise closed(exc)
        session = store.get(body.game_id)
        return {
            "success": outcome.changed,
            "outcome": outcome.to_dict(),
            "state": session.to_dict(),
            "result": session.game.result().to_dict() if session.recorded else None,
            "rewards": session.receipt,
        }

    @app.post("/api/game/undo")
    async def undo(body: GameRequest):
        lookup(body.game_id)
        try:
            undone = store.undo(body.game_id)
        except SessionClosedError as exc:
            raise closed(exc)
        return {"success": undone, "state": store.get(body.game_id).to_dict()}

    @app.post("/api/game/end")
    async def end_game(body: GameRequest):
        lookup(body.game_id)
        try:
            result, receipt = store.end(body.game_id)
        except SessionClosedError as exc:
            raise closed(exc)
        return {
            "success": True,
            "message": "Game ended successfully",
            "final_score": result.score,
            "ended_at": result.ended_at,
            "status": result.status.value,
            "rewards": receipt,
        }

    @app.get("/api/user/{address}/profile")
    async def user_profile(address: str):
        return store.profile(require_address(address))

    @app.get("/api/user/{address}/history")
    async def user_history(address: str,
                           limit: int = Query(20, ge=1, le=200),
                           offset: int = Query(0, ge=0)):
        address = require_address(address)
        games, total = store.games_for(address, limit, offset)
        return {
            "address": address,
            "games": games,
            "total_count": total,
            "pagination": {"limit": limit, "offset": offset},
        }

    return app
