#!/usr/bin/env python3
"""
Play 2048 in the terminal, or let a simple policy play many games and report
statistics.

Example usage:
    python play.py --seed 7
    python play.py --auto --games 200 --policy greedy
"""
import argparse
import logging
from typing import Any, Dict, List, Optional

import numpy as np
from tabulate import tabulate
from tqdm import tqdm

from game2048 import ConfigurationError, Direction, Game, GameRules, GameStatus, InvalidDirectionError
from game2048_api.config import add_rules_arguments, rules_config

KEYS = {
    "w": Direction.UP,
    "d": Direction.RIGHT,
    "s": Direction.DOWN,
    "a": Direction.LEFT,
}
POLICIES = ("random", "greedy")


def choose_move(game: Game, policy: str, rng: np.random.Generator) -> Optional[Direction]:
    valid_moves = game.get_valid_moves()
    if not valid_moves:
        return None
    if policy == "greedy":
        grid = game.grid()
        gains = [game.rules.simulate_move(grid, d)[1] for d in valid_moves]
        best = max(gains)
        valid_moves = [d for d, gain in zip(valid_moves, gains) if gain == best]
    return valid_moves[int(rng.integers(len(valid_moves)))]


def play_auto_game(rules: GameRules, seed: Optional[int] = None, policy: str = "random",
                   render: bool = False) -> Dict[str, Any]:
    """Play a single game with ``policy`` and return its statistics"""
    game = Game(rules, seed=seed)
    rng = np.random.default_rng(seed)

    while not game.status.is_terminal:
        direction = choose_move(game, policy, rng)
        if direction is None:
            break
        outcome = game.apply_move(direction)
        if render:
            print(f"\nMove {game.moves}: {direction.label} (+{outcome.score_gain})")
            print(game.render_ascii())

    return {
        'max_tile': game.highest_tile,
        'score': game.score,
        'turns': game.moves,
        'status': game.status.value,
    }


def play_games(rules: GameRules, num_games: int = 100, policy: str = "random",
               seed: Optional[int] = None) -> List[Dict[str, Any]]:
    seeds = np.random.default_rng(seed).integers(2 ** 63, size=num_games)
    print(f"Playing {num_games} games with the {policy} policy...")
    return [play_auto_game(rules, int(game_seed), policy) for game_seed in tqdm(seeds)]


def analyze_results(results: List[Dict[str, Any]], win_threshold: int = 2048) -> Dict[str, Any]:
    max_tiles = [result['max_tile'] for result in results]

    # Games reaching each power of two from 4 up to the win threshold or the best tile seen
    tile_stats = {}
    max_power = int(np.log2(max(max_tiles + [win_threshold])))
    for power in range(2, max_power + 1):
        tile_value = 2 ** power
        count = sum(1 for tile in max_tiles if tile >= tile_value)
        tile_stats[tile_value] = (count, count / len(results) * 100)

    wins = sum(1 for result in results if result['status'] == "won")
    return {
        'tile_stats': tile_stats,
        'avg_score': sum(result['score'] for result in results) / len(results),
        'max_score': max(result['score'] for result in results),
        'avg_turns': sum(result['turns'] for result in results) / len(results),
        'num_games': len(results),
        'win_rate': wins / len(results) * 100,
        'win_threshold': win_threshold,
    }


def print_statistics(stats: Dict[str, Any]):
    print(f"\nStatistics for {stats['num_games']} games:")
    print(f"Average score: {stats['avg_score']:.1f}")
    print(f"Best score: {stats['max_score']}")
    print(f"Average turns: {stats['avg_turns']:.1f}")
    print(f"Win rate (>= {stats['win_threshold']}): {stats['win_rate']:.1f}%")

    table_data = []
    for tile_value, (count, percentage) in sorted(stats['tile_stats'].items()):
        table_data.append([
            f"{tile_value}",
            f"{count}/{stats['num_games']}",
            f"{percentage:.1f}%"
        ])

    print("\nMax Tile Achievement Rates:")
    print(tabulate(table_data, headers=["Tile", "Count", "Percentage"], tablefmt="grid"))


def play_interactive(rules: GameRules, seed: Optional[int] = None):
    game = Game(rules, seed=seed)
    print("w/a/s/d or up/left/down/right to move, u to undo, r to restart, q to quit")

    while True:
        print(f"\nScore: {game.score}  Moves: {game.moves}  Status: {game.status.value}")
        print(game.render_ascii())
        if game.status.is_terminal:
            result = game.result()
            print("You win!" if result.status is GameStatus.WON else "No moves left.")
            print(f"Final score: {result.score} at {result.ended_at}")

        command = input("> ").strip().lower()
        if command in ("q", "quit", "exit"):
            break
        if command in ("r", "restart"):
            game.reset()
            continue
        if command in ("u", "undo"):
            if not game.undo():
                print("Nothing to undo")
            continue

        try:
            direction = KEYS[command] if command in KEYS else Direction.parse(command)
        except InvalidDirectionError:
            print(f"Unknown command: {command}")
            continue

        outcome = game.apply_move(direction)
        if not outcome.applicable:
            print("The game is over, press r to restart")
        elif not outcome.changed:
            print(f"Cannot move {direction.label}")

    return game


def main(argv=None):
    parser = argparse.ArgumentParser(description="Play 2048 in the terminal")
    add_rules_arguments(parser)
    parser.add_argument("--seed", type=int, default=None, help="Random seed for tile spawns")
    parser.add_argument("--auto", action="store_true", help="Let a policy play instead of reading input")
    parser.add_argument("--games", type=int, default=100, help="Number of games to play in auto mode")
    parser.add_argument("--policy", choices=POLICIES, default="random", help="Auto-play policy")
    parser.add_argument("--render", action="store_true", help="Render the first auto-played game")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    try:
        rules = GameRules.from_config(rules_config(args))
    except ConfigurationError as e:
        parser.error(str(e))

    if not args.auto:
        play_interactive(rules, seed=args.seed)
        return

    if args.render:
        print("Playing a sample game with rendering...")
        play_auto_game(rules, seed=args.seed, policy=args.policy, render=True)

    results = play_games(rules, num_games=args.games, policy=args.policy, seed=args.seed)
    print_statistics(analyze_results(results, win_threshold=rules.target))


if __name__ == "__main__":
    main()
