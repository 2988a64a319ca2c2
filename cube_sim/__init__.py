"""Cube puzzle simulator: move algebra, state encoders and environment handle."""

from .engine import CubeEnvironment, new_environment
from .puzzles import PUZZLE_NAMES, make_puzzle
from .simulator import step
from .solved_check import is_goal
from .state_codec import InvalidStateError, State

__all__ = [
    "CubeEnvironment",
    "InvalidStateError",
    "PUZZLE_NAMES",
    "State",
    "is_goal",
    "make_puzzle",
    "new_environment",
    "step",
]
