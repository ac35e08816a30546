import argparse
from typing import Any, Dict, List, Optional


def add_rules_arguments(parser: argparse.ArgumentParser) -> None:
    """Board rule flags shared by the server and the terminal player."""
    parser.add_argument("--height", type=int, default=4, help="Board height")
    parser.add_argument("--width", type=int, default=4, help="Board width")
    parser.add_argument("--target", type=int, default=2048, help="Tile value that wins the game")
    parser.add_argument("--four-probability", type=float, default=0.1,
                        help="Probability that a spawned tile is a 4 instead of a 2")
    parser.add_argument("--initial-tiles", type=int, default=2, help="Tiles placed on a fresh board")
    parser.add_argument("--max-history", type=int, default=20, help="Number of moves that can be undone")


def rules_config(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "height": args.height,
        "width": args.width,
        "target": args.target,
        "four_probability": args.four_probability,
        "initial_tiles": args.initial_tiles,
        "max_history": args.max_history,
    }


def parse_args(argv: Optional[List[str]] = None) -> Dict[str, Any]:
    parser = argparse.ArgumentParser(description="2048 Game Session Server")

    # Basic server settings
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--auth-token", type=str, default="",
                        help="Bearer token required on every request (disabled when empty)")
    parser.add_argument("--cors-origin", action="append", default=None,
                        help="Allowed CORS origin, may be repeated (default: any)")

    # Game settings
    add_rules_arguments(parser)
    parser.add_argument("--leaderboard-size", type=int, default=100,
                        help="Finished games kept for the leaderboard")
    parser.add_argument("--history-size", type=int, default=200,
                        help="Finished games kept per player address")
    parser.add_argument("--closed-size", type=int, default=100,
                        help="Ended games whose state can still be fetched by id")

    # Logging
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    parser.add_argument("--log-file", type=str, default="server.log", help="Log file (empty to disable)")

    args = parser.parse_args(argv)

    config = {
        # Server settings
        "host": args.host,
        "port": args.port,
        "auth_token": args.auth_token,
        "cors_origins": args.cors_origin or ["*"],

        # Game settings
        "rules": rules_config(args),
        "leaderboard_size": args.leaderboard_size,
        "history_size": args.history_size,
        "closed_size": args.closed_size,

        # Logging
        "log_level": args.log_level.upper(),
        "log_file": args.log_file,
    }

    return config


def default_config() -> Dict[str, Any]:
    return parse_args([])
