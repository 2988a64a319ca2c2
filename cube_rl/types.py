"""Shared dataclasses for the Q-learning pipeline."""

from __future__ import annotations

from dataclasses import dataclass

# Session lifecycle: idle -> training -> {converged, cancelled, exhausted} -> idle.
IDLE = "idle"
TRAINING = "training"
CONVERGED = "converged"
CANCELLED = "cancelled"
EXHAUSTED = "exhausted"  # max_episodes reached without convergence


@dataclass
class EpisodeResult:
    episode: int
    steps: int
    solved: bool
    total_reward: float
    epsilon: float
    alpha: float
    potential: int = 0  # goal potential of the last state reached


@dataclass
class TrainingProgress:
    state: str
    outcome: str | None
    episode: int
    epsilon: float
    alpha: float
    last_reward: float
    max_reward: float
    average_reward: float
    best_average_reward: float
    window_fill: int
    q_states: int
