"""Train a Q-table from the command line, with TensorBoard scalars and a greedy demo solve."""

from __future__ import annotations

import argparse
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Any

from torch.utils.tensorboard import SummaryWriter

from cube_sim.engine import CubeEnvironment, new_environment
from cube_sim.puzzles import MARKED_CORNER, PUZZLE_NAMES

from .trainer import QLearningTrainer, TrainingConfig, TrainingSession, load_config
from .types import EpisodeResult

_FIELD_HELP = {
    "alpha": "Initial learning rate",
    "gamma": "Discount factor",
    "initial_epsilon": "Starting exploration rate",
    "min_epsilon": "Exploration floor",
    "decay_rate": "Epsilon decay: eps = max(min, init * exp(-decay * episode))",
    "max_steps": "Maximum moves per episode",
    "window_size": "Episodes in the convergence window",
    "target_reward": "Window mean reward that counts as converged",
    "min_alpha": "Learning-rate floor",
    "alpha_decay": "Per-episode learning-rate factor",
    "initial_q": "Value of every action in a freshly created Q-row",
    "max_episodes": "Episode budget (default: until convergence or Ctrl-C)",
    "scramble_moves": "Random moves from the goal used as episode start (scrambled puzzles)",
    "seed": "Random seed",
    "log_interval": "Episodes between episode_stats log lines (0 = off)",
}

_FIELD_TYPES = {
    "alpha": float,
    "gamma": float,
    "initial_epsilon": float,
    "min_epsilon": float,
    "decay_rate": float,
    "max_steps": int,
    "window_size": int,
    "target_reward": float,
    "min_alpha": float,
    "alpha_decay": float,
    "initial_q": float,
    "max_episodes": int,
    "scramble_moves": int,
    "seed": int,
    "log_interval": int,
}


def add_training_arguments(p: argparse.ArgumentParser, defaults: dict | None = None) -> argparse.ArgumentParser:
    d = defaults or {}
    train = d.get("training", {}) or {}
    puz = d.get("puzzle", {}) or {}
    base = TrainingConfig()

    p.add_argument("--config", type=str, default=None, help="Path to YAML config (puzzle + training params)")
    p.add_argument("--puzzle", default=puz.get("name", MARKED_CORNER), choices=list(PUZZLE_NAMES))
    p.add_argument("--dims", type=int, nargs=3, default=puz.get("dims"), metavar=("X", "Y", "Z"))
    p.add_argument("--goal", type=int, default=puz.get("goal"), help="Goal slot of the marked piece")
    p.add_argument("--initial", type=int, default=puz.get("initial"), help="Initial slot of the marked piece")
    p.add_argument(
        "--include-primes",
        action=argparse.BooleanOptionalAction,
        default=puz.get("include_primes"),
        help="Add counter-clockwise corner turns to the move set",
    )
    p.add_argument(
        "--rotation-invariant-goal",
        action=argparse.BooleanOptionalAction,
        default=puz.get("rotation_invariant_goal", False),
        help="Count every global rotation of the solved corners as solved",
    )

    for f in fields(TrainingConfig):
        flag = "--" + f.name.replace("_", "-")
        p.add_argument(
            flag,
            type=_FIELD_TYPES[f.name],
            default=train.get(f.name, getattr(base, f.name)),
            dest=f.name,
            help=_FIELD_HELP[f.name],
        )

    p.add_argument("--tensorboard", action=argparse.BooleanOptionalAction, default=train.get("tensorboard", True))
    p.add_argument("--tensorboard-logdir", default=train.get("tensorboard_logdir", "runs/cube_qlearning"))
    p.add_argument("--exp-name", type=str, default=None, help="Optional experiment name for TensorBoard log grouping")
    p.add_argument("--demo-scramble", type=int, default=train.get("demo_scramble", 10))
    p.add_argument("--progress", default="on", choices=["on", "off"])
    return p


def build_parser(defaults: dict | None = None) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train a tabular Q-learning agent on a cube puzzle")
    return add_training_arguments(p, defaults)


def config_from_args(args: argparse.Namespace) -> TrainingConfig:
    return TrainingConfig(**{f.name: getattr(args, f.name) for f in fields(TrainingConfig)})


def environment_from_args(args: argparse.Namespace) -> CubeEnvironment:
    return new_environment(
        args.puzzle,
        goal=args.goal,
        initial=args.initial,
        dims=args.dims,
        include_primes=args.include_primes,
        rotation_invariant_goal=args.rotation_invariant_goal,
    )


class TensorBoardRecorder:
    """Per-episode scalars for a training run."""

    def __init__(self, writer: SummaryWriter):
        self.writer = writer

    def __call__(self, result: EpisodeResult, session: TrainingSession) -> None:
        ep = result.episode
        self.writer.add_scalar("train/episode_reward", result.total_reward, ep)
        self.writer.add_scalar("train/window_avg_reward", session.average_reward, ep)
        self.writer.add_scalar("train/episode_steps", result.steps, ep)
        self.writer.add_scalar("train/solved", float(result.solved), ep)
        self.writer.add_scalar("train/epsilon", result.epsilon, ep)
        self.writer.add_scalar("train/alpha", result.alpha, ep)


class _RewardHistory:
    def __init__(self, recorder: TensorBoardRecorder | None):
        self.recorder = recorder
        self.rewards: list[float] = []

    def __call__(self, result: EpisodeResult, session: TrainingSession) -> None:
        self.rewards.append(result.total_reward)
        if self.recorder is not None:
            self.recorder(result, session)


def run_training(args: argparse.Namespace) -> dict[str, Any]:
    config = config_from_args(args)
    env = environment_from_args(args)
    trainer = QLearningTrainer(config)

    writer: SummaryWriter | None = None
    tb_logdir: str | None = None
    if args.tensorboard:
        run_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        exp_name = getattr(args, "exp_name", None)
        if exp_name:
            tb_logdir = str(Path(args.tensorboard_logdir) / exp_name / f"run_{run_timestamp}")
        else:
            tb_logdir = str(Path(args.tensorboard_logdir) / f"run_{run_timestamp}")
        writer = SummaryWriter(log_dir=tb_logdir)
        writer.add_text("meta/puzzle", env.puzzle.name, 0)

    history = _RewardHistory(TensorBoardRecorder(writer) if writer is not None else None)
    try:
        final = trainer.run(env, progress=args.progress == "on", on_episode=history)
        if writer is not None:
            writer.add_scalar("train/q_states", final.q_states, final.episode)
    finally:
        if writer is not None:
            writer.flush()
            writer.close()

    plan_names: list[str] = []
    solved = False
    if args.demo_scramble > 0:
        env.reset()
        _, scramble_names = env.scramble(args.demo_scramble, seed=config.seed)
        start_key = env.current_state_key()
        plan = trainer.solve(env)
        env.apply_moves(plan)
        plan_names = [m.name for m in plan]
        solved = env.is_solved()
        print(
            "demo_solve "
            f"scramble={' '.join(scramble_names)} start_key={list(start_key)} "
            f"plan={' '.join(plan_names) or '-'} solved={solved}",
            flush=True,
        )

    return {
        "progress": final,
        "trainer": trainer,
        "env": env,
        "rewards": history.rewards,
        "plan": plan_names,
        "solved": solved,
        "tb_logdir": tb_logdir,
    }


def parse_args(argv: list[str] | None = None, parser_factory=build_parser) -> argparse.Namespace:
    # Pre-parse to get --config
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", type=str, default=None)
    pre_args, _ = pre.parse_known_args(argv)

    defaults = {}
    if pre_args.config:
        defaults = load_config(pre_args.config)

    parser = parser_factory(defaults)
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()
    run_training(args)


if __name__ == "__main__":
    main()
