import logging
import threading
import time
import uuid
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import numpy as np

from game2048 import Game, GameResult, GameRules, GameStatus, MoveOutcome

from .auth import short_address
from .rewards import RewardClient, RewardClientFactory

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    pass


class SessionClosedError(RuntimeError):
    pass


class GameSession:
    """One player's game plus the reward client that lives as long as it does"""

    def __init__(self, game_id: str, address: str, game: Game, reward_client: RewardClient, started_at: int):
        self.game_id = game_id
        self.address = address
        self.game = game
        self.reward_client = reward_client
        self.started_at = started_at
        self.closed = False
        self.receipt: Optional[Dict[str, Any]] = None

    @property
    def recorded(self) -> bool:
        return self.receipt is not None

    def to_dict(self) -> Dict[str, Any]:
        state = self.game.to_dict()
        state.update({
            "game_id": self.game_id,
            "address": self.address,
            "started_at": self.started_at,
            "is_active": not self.closed,
        })
        return state


class SessionStore:
    """All game sessions of a server process.

    Every public method takes the lock for its whole duration, so each engine
    command runs to completion before the next one on any session starts.
    """

    def __init__(self,
                 rules: GameRules,
                 reward_factory: RewardClientFactory,
                 leaderboard_size: int = 100,
                 history_size: int = 200,
                 closed_size: int = 100,
                 clock: Callable[[], float] = time.time,
                 seed: Optional[int] = None):
        self.lock = threading.RLock()
        self.rules = rules
        self.reward_factory = reward_factory
        self.leaderboard_size = leaderboard_size
        self.history_size = history_size
        self.closed_size = closed_size
        self.clock = clock
        self._seeds = np.random.default_rng(seed)

        self.sessions: Dict[str, GameSession] = {}
        # Ended sessions stay readable until closed_size newer ones push them out
        self.closed_sessions: "OrderedDict[str, GameSession]" = OrderedDict()
        self.active_by_address: Dict[str, str] = {}
        self.finished_games: List[Dict[str, Any]] = []
        self.history: Dict[str, Deque[Dict[str, Any]]] = {}
        self.totals: Dict[str, Dict[str, int]] = {}
        self.first_seen: Dict[str, int] = {}
        self.last_active: Dict[str, int] = {}

    def _touch(self, address: str) -> None:
        now = int(self.clock())
        self.first_seen.setdefault(address, now)
        self.last_active[address] = now

    def start(self, address: str) -> GameSession:
        """Start a new game for ``address``, ending any game it still has open"""
        with self.lock:
            previous = self.active_by_address.get(address)
            if previous is not None:
                logger.info(f"Closing game {previous} of {short_address(address)} before starting a new one")
                self.end(previous)

            game_id = uuid.uuid4().hex
            game_seed = int(self._seeds.integers(2 ** 63))
            game = Game(self.rules, seed=game_seed, clock=self.clock)
            session = GameSession(game_id, address, game, self.reward_factory(address), int(self.clock()))

            self.sessions[game_id] = session
            self.active_by_address[address] = game_id
            self._touch(address)
            logger.info(f"Started game {game_id} for {short_address(address)}")

            # A tiny board can already be decided by its initial tiles
            if game.status.is_terminal:
                self._record(session)
            return session

    def get(self, game_id: str) -> GameSession:
        with self.lock:
            session = self.sessions.get(game_id) or self.closed_sessions.get(game_id)
            if session is None:
                raise SessionNotFoundError(game_id)
            return session

    def _open_session(self, game_id: str) -> GameSession:
        session = self.get(game_id)
        if session.closed:
            raise SessionClosedError(f"Game {game_id} has ended")
        return session

    def active_for(self, address: str) -> Optional[GameSession]:
        with self.lock:
            game_id = self.active_by_address.get(address)
            return self.sessions[game_id] if game_id else None

    def move(self, game_id: str, direction) -> MoveOutcome:
        with self.lock:
            session = self._open_session(game_id)
            outcome = session.game.apply_move(direction)
            self._touch(session.address)
            if session.game.status.is_terminal and not session.recorded:
                self._record(session)
            return outcome

    def undo(self, game_id: str) -> bool:
        with self.lock:
            session = self._open_session(game_id)
            return session.game.undo()

    def end(self, game_id: str) -> Tuple[GameResult, Dict[str, Any]]:
        """Close a session, recording the game first if it is still running"""
        with self.lock:
            session = self._open_session(game_id)
            if not session.recorded:
                session.game.finish()
                self._record(session)

            session.closed = True
            session.reward_client.close()
            if self.active_by_address.get(session.address) == game_id:
                del self.active_by_address[session.address]
            self._retire(session)
            self._touch(session.address)
            logger.info(f"Ended game {game_id} of {short_address(session.address)} "
                        f"with score {session.game.score}")
            return session.game.result(), session.receipt

    def _retire(self, session: GameSession) -> None:
        del self.sessions[session.game_id]
        if self.closed_size <= 0:
            return
        self.closed_sessions[session.game_id] = session
        while len(self.closed_sessions) > self.closed_size:
            self.closed_sessions.popitem(last=False)

    def _record(self, session: GameSession) -> None:
        result = session.game.result()
        receipt = session.reward_client.submit(session.address, result)
        session.receipt = receipt

        entry = {
            "game_id": session.game_id,
            "address": session.address,
            "claim_id": receipt["claim_id"],
            "nft_eligible": receipt["nft_eligible"],
            **result.to_dict(),
        }

        self.finished_games.append(entry)
        self.finished_games.sort(key=lambda e: (-e["score"], e["ended_at"]))
        del self.finished_games[self.leaderboard_size:]

        games = self.history.setdefault(session.address, deque(maxlen=self.history_size))
        games.appendleft(entry)

        # Running totals outlive the capped history
        totals = self.totals.setdefault(session.address, {
            "total_games": 0, "high_score": 0, "best_tile": 0, "wins": 0, "nfts_eligible": 0,
        })
        totals["total_games"] += 1
        totals["high_score"] = max(totals["high_score"], result.score)
        totals["best_tile"] = max(totals["best_tile"], result.highest_tile)
        totals["wins"] += int(result.status is GameStatus.WON)
        totals["nfts_eligible"] += int(bool(receipt["nft_eligible"]))
        logger.info(f"Recorded game {session.game_id}: {result.status.value}, score {result.score}")

    def leaderboard(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self.lock:
            return [dict(entry, rank=i + 1) for i, entry in enumerate(self.finished_games[:limit])]

    def profile(self, address: str) -> Dict[str, Any]:
        with self.lock:
            totals = self.totals.get(address, {})
            return {
                "address": address,
                "total_games": totals.get("total_games", 0),
                "high_score": totals.get("high_score", 0),
                "best_tile": totals.get("best_tile", 0),
                "wins": totals.get("wins", 0),
                "nfts_eligible": totals.get("nfts_eligible", 0),
                "joined_at": self.first_seen.get(address),
                "last_active": self.last_active.get(address),
                "active_game_id": self.active_by_address.get(address),
            }

    def games_for(self, address: str, limit: int = 20, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        with self.lock:
            games = list(self.history.get(address, ()))
            return games[offset:offset + limit], len(games)
