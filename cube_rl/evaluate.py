"""Train a Q-table, then measure greedy planning over scramble depths."""

from __future__ import annotations

import argparse
import csv
import json
import time
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from cube_sim.engine import random_move_indices
from cube_sim.simulator import apply_moves
from cube_sim.state_codec import State

from .planner import EmptyPolicyWarning, QPlanner
from .train import add_training_arguments, parse_args, run_training

matplotlib.use("Agg")


@dataclass
class DepthMetrics:
    scramble_depth: int
    episodes: int
    solved_count: int
    success_rate: float
    missing_policy_count: int
    plan_solved_min: float | None
    plan_solved_mean: float | None
    plan_solved_max: float | None
    eval_time_sec: float
    episodes_per_sec: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "scramble_depth": self.scramble_depth,
            "episodes": self.episodes,
            "solved_count": self.solved_count,
            "success_rate": self.success_rate,
            "missing_policy_count": self.missing_policy_count,
            "plan_solved_min": self.plan_solved_min,
            "plan_solved_mean": self.plan_solved_mean,
            "plan_solved_max": self.plan_solved_max,
            "eval_time_sec": self.eval_time_sec,
            "episodes_per_sec": self.episodes_per_sec,
        }


METRIC_FIELDS = list(DepthMetrics.__dataclass_fields__)


def _aggregate_metrics(
    scramble_depth: int,
    solved: np.ndarray,
    plan_lengths: np.ndarray,
    missing: int,
    eval_time_sec: float,
) -> DepthMetrics:
    solved = np.asarray(solved, dtype=bool)
    plan_lengths = np.asarray(plan_lengths, dtype=np.int64)
    episodes = int(plan_lengths.size)
    solved_count = int(solved.sum())
    success_rate = float(solved_count / episodes) if episodes > 0 else 0.0

    if solved_count > 0:
        solved_lengths = plan_lengths[solved]
        plan_min = float(np.min(solved_lengths))
        plan_mean = float(np.mean(solved_lengths))
        plan_max = float(np.max(solved_lengths))
    else:
        plan_min = plan_mean = plan_max = None

    return DepthMetrics(
        scramble_depth=scramble_depth,
        episodes=episodes,
        solved_count=solved_count,
        success_rate=success_rate,
        missing_policy_count=int(missing),
        plan_solved_min=plan_min,
        plan_solved_mean=plan_mean,
        plan_solved_max=plan_max,
        eval_time_sec=float(eval_time_sec),
        episodes_per_sec=float(episodes / max(eval_time_sec, 1e-9)),
    )


def evaluate_planner(
    planner: QPlanner,
    goal_state: State,
    depths: range | list[int],
    episodes_per_depth: int,
    max_depth: int,
    seed: int | None = None,
    progress: bool = False,
) -> list[DepthMetrics]:
    """Scramble the goal ``depth`` moves, plan back and count how often the plan lands on a goal."""
    if episodes_per_depth < 1:
        raise ValueError("episodes_per_depth must be >= 1")
    puzzle = planner.puzzle
    encoder = puzzle.encoder
    rng = np.random.default_rng(seed)

    metrics: list[DepthMetrics] = []
    for depth in depths:
        t0 = time.perf_counter()
        solved_out = np.zeros((episodes_per_depth,), dtype=bool)
        lengths_out = np.zeros((episodes_per_depth,), dtype=np.int64)
        missing = 0
        episode_iter = range(episodes_per_depth)
        if progress:
            episode_iter = tqdm(episode_iter, desc=f"scramble={depth}", unit="ep", mininterval=1.0, leave=False)

        for i in episode_iter:
            actions = random_move_indices(puzzle, depth, rng)
            start = apply_moves(goal_state, [puzzle.moves[a] for a in actions])
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always", EmptyPolicyWarning)
                plan = planner.solve(start, max_depth)
            if any(issubclass(w.category, EmptyPolicyWarning) for w in caught):
                missing += 1
            end = apply_moves(start, plan)
            solved_out[i] = encoder.encode(end) in planner.goal_keys
            lengths_out[i] = len(plan)

        metrics.append(_aggregate_metrics(depth, solved_out, lengths_out, missing, time.perf_counter() - t0))
    return metrics


def _fmt_opt(v: float | None) -> str:
    return "N/A" if v is None else f"{v:.2f}"


def _print_row(m: DepthMetrics) -> None:
    plan = f"{_fmt_opt(m.plan_solved_min)}/{_fmt_opt(m.plan_solved_mean)}/{_fmt_opt(m.plan_solved_max)}"
    print(
        f"{m.scramble_depth:8d} | "
        f"{m.success_rate:11.4f} | "
        f"{m.solved_count:6d}/{m.episodes:<6d} | "
        f"{m.missing_policy_count:7d} | "
        f"{plan:20s}",
        flush=True,
    )


def _plot_metrics(
    metrics: list[DepthMetrics],
    rewards: list[float],
    window: int,
    output_dir: Path,
    prefix: str,
) -> tuple[Path, Path]:
    depths = np.array([m.scramble_depth for m in metrics], dtype=np.int64)
    sr = np.array([m.success_rate for m in metrics], dtype=np.float64)

    fig1 = plt.figure(figsize=(10, 5))
    ax1 = fig1.add_subplot(111)
    ax1.plot(depths, sr, marker="o", linewidth=2.0)
    ax1.set_title("Greedy Planner: Success Rate vs Scramble Depth")
    ax1.set_xlabel("Scramble depth")
    ax1.set_ylabel("Success rate")
    ax1.set_ylim(0.0, 1.0)
    ax1.grid(True, alpha=0.3)
    sr_path = output_dir / f"{prefix}_success_rate.png"
    fig1.tight_layout()
    fig1.savefig(sr_path, dpi=160)
    plt.close(fig1)

    y = np.asarray(rewards, dtype=np.float64)
    x = np.arange(1, y.size + 1)
    fig2 = plt.figure(figsize=(11, 6))
    ax2 = fig2.add_subplot(111)
    ax2.plot(x, y, alpha=0.35, linewidth=1.0, label="Episode reward")
    if window > 1 and y.size >= window:
        smooth = np.convolve(y, np.ones(window) / window, mode="valid")
        ax2.plot(x[window - 1 :], smooth, linewidth=2.0, label=f"Mean of last {window}")
    ax2.set_title("Training Reward")
    ax2.set_xlabel("Episode")
    ax2.set_ylabel("Reward")
    ax2.grid(True, alpha=0.3)
    ax2.legend(loc="best")
    reward_path = output_dir / f"{prefix}_reward.png"
    fig2.tight_layout()
    fig2.savefig(reward_path, dpi=160)
    plt.close(fig2)

    return sr_path, reward_path


def _save_reports(
    metrics: list[DepthMetrics],
    output_dir: Path,
    prefix: str,
    args: argparse.Namespace,
    training: dict[str, Any],
) -> tuple[Path, Path]:
    csv_path = output_dir / f"{prefix}_metrics.csv"
    json_path = output_dir / f"{prefix}_metrics.json"

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=METRIC_FIELDS)
        writer.writeheader()
        for m in metrics:
            writer.writerow(m.to_dict())

    final = training["progress"]
    payload = {
        "config": {
            "puzzle": args.puzzle,
            "training": training["trainer"].config.to_dict(),
            "episodes_per_scramble": int(args.episodes_per_scramble),
            "scramble_min": int(args.scramble_min),
            "scramble_max": int(args.scramble_max),
            "max_plan_length": int(args.max_plan_length),
        },
        "training": {
            "outcome": final.outcome,
            "episodes": final.episode,
            "average_reward": final.average_reward,
            "best_average_reward": final.best_average_reward,
            "q_states": final.q_states,
        },
        "metrics": [m.to_dict() for m in metrics],
    }
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return csv_path, json_path


def build_parser(defaults: dict | None = None) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train a Q-table, then evaluate greedy plans over scramble depths")
    add_training_arguments(p, defaults)
    ev = (defaults or {}).get("evaluation", {}) or {}
    p.add_argument("--episodes-per-scramble", type=int, default=ev.get("episodes_per_scramble", 200))
    p.add_argument("--scramble-min", type=int, default=ev.get("scramble_min", 1))
    p.add_argument("--scramble-max", type=int, default=ev.get("scramble_max", 8))
    p.add_argument("--max-plan-length", type=int, default=ev.get("max_plan_length", 50))
    p.add_argument("--output-dir", default=ev.get("output_dir", "eval_reports"))
    p.add_argument("--output-prefix", default=ev.get("output_prefix", "qlearning_eval"))
    return p


def run_evaluation(args: argparse.Namespace) -> dict[str, Any]:
    if args.scramble_min < 1 or args.scramble_max < args.scramble_min:
        raise ValueError("Require 1 <= scramble_min <= scramble_max")
    if args.episodes_per_scramble < 1:
        raise ValueError("--episodes-per-scramble must be >= 1")
    if args.max_plan_length < 0:
        raise ValueError("--max-plan-length must be >= 0")

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    training = run_training(args)
    trainer = training["trainer"]
    env = training["env"]
    planner = trainer.planner(env)

    print(
        "evaluation_init "
        f"puzzle={env.puzzle.name} q_states={len(planner.table)} "
        f"episodes_per_scramble={args.episodes_per_scramble} "
        f"scramble_range={args.scramble_min}..{args.scramble_max} max_plan_length={args.max_plan_length}",
        flush=True,
    )
    print("scramble | success_rate | solved/total | missing | plan_len(min/mean/max)", flush=True)

    metrics = evaluate_planner(
        planner,
        env.goal_state(),
        range(int(args.scramble_min), int(args.scramble_max) + 1),
        int(args.episodes_per_scramble),
        int(args.max_plan_length),
        seed=args.seed,
        progress=args.progress == "on",
    )
    for m in metrics:
        _print_row(m)

    sr_path, reward_path = _plot_metrics(
        metrics, training["rewards"], trainer.config.window_size, output_dir, args.output_prefix
    )
    csv_path, json_path = _save_reports(metrics, output_dir, args.output_prefix, args, training)

    avg_sr = float(np.mean([m.success_rate for m in metrics]))
    print(
        "evaluation_summary "
        f"avg_success_rate={avg_sr:.4f} sr_plot={sr_path} reward_plot={reward_path} csv={csv_path} json={json_path}",
        flush=True,
    )

    return {
        "metrics": metrics,
        "training": training,
        "sr_plot": sr_path,
        "reward_plot": reward_path,
        "csv": csv_path,
        "json": json_path,
    }


def main() -> None:
    args = parse_args(parser_factory=build_parser)
    run_evaluation(args)


if __name__ == "__main__":
    main()
