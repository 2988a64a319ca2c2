"""CLI entrypoint for the cube simulator."""

from __future__ import annotations

import argparse
import json

from .engine import CubeEnvironment, new_environment
from .puzzles import PUZZLE_NAMES
from .state_codec import key_from_text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cube puzzle simulator")
    sub = parser.add_subparsers(dest="mode", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--puzzle", default="marked-corner", choices=list(PUZZLE_NAMES))
    common.add_argument("--dims", type=int, nargs=3, default=None, metavar=("X", "Y", "Z"))
    common.add_argument("--goal", type=int, default=None, help="Goal slot of the marked piece")
    common.add_argument("--include-primes", action=argparse.BooleanOptionalAction, default=None)
    common.add_argument("--state-key", type=str, default=None, help="Comma-separated start key")

    sub.add_parser("moves", parents=[common], help="List the legal moves and their permutations")

    scramble = sub.add_parser("scramble", parents=[common], help="Apply random moves and print the key")
    scramble.add_argument("--steps", type=int, default=20)
    scramble.add_argument("--seed", type=int, default=None)

    apply = sub.add_parser("apply", parents=[common], help="Apply named moves and print the key")
    apply.add_argument("moves", nargs="+")

    return parser


def _make_env(args: argparse.Namespace) -> CubeEnvironment:
    env = new_environment(
        args.puzzle,
        goal=args.goal,
        dims=args.dims,
        include_primes=args.include_primes,
    )
    if args.state_key:
        env.set_state_key(key_from_text(args.state_key))
    return env


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    env = _make_env(args)

    if args.mode == "moves":
        for move in env.moves:
            print(json.dumps({"name": move.name, "perm": list(move.perm), "twist": list(move.twist)}))
        return

    if args.mode == "scramble":
        _, names = env.scramble(args.steps, seed=args.seed)
        payload = env.state_payload()
        payload["moves"] = names
        print(json.dumps(payload))
        return

    if args.mode == "apply":
        env.apply_moves(args.moves)
        print(json.dumps(env.state_payload()))
        return

    parser.error(f"Unsupported mode: {args.mode}")


if __name__ == "__main__":
    main()
