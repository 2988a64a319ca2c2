"""Tabular Q-learning trainer and greedy planner for the cube puzzles."""

from .planner import EmptyPolicyWarning, QPlanner
from .qtable import QTable
from .trainer import (
    QLearningTrainer,
    TrainingAlreadyActive,
    TrainingConfig,
    TrainingHandle,
    solve,
    start_training,
)

__all__ = [
    "EmptyPolicyWarning",
    "QLearningTrainer",
    "QPlanner",
    "QTable",
    "TrainingAlreadyActive",
    "TrainingConfig",
    "TrainingHandle",
    "solve",
    "start_training",
]
