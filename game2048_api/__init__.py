from .auth import TokenAuthMiddleware, is_address, short_address, signature_message, is_recent_timestamp
from .rewards import RewardClient, LocalRewardClient, RewardLedger, local_reward_factory
from .sessions import GameSession, SessionStore, SessionNotFoundError, SessionClosedError
from .config import parse_args, default_config
from .app import create_app, build_store

__all__ = [
    "TokenAuthMiddleware",
    "is_address",
    "short_address",
    "signature_message",
    "is_recent_timestamp",

    "RewardClient",
    "LocalRewardClient",
    "RewardLedger",
    "local_reward_factory",

    "GameSession",
    "SessionStore",
    "SessionNotFoundError",
    "SessionClosedError",

    "parse_args",
    "default_config",

    "create_app",
    "build_store",
]
