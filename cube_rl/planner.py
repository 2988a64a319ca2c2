"""Greedy planner reading a trained Q-table."""

from __future__ import annotations

import warnings
from typing import Collection

from cube_sim.moves import Move
from cube_sim.puzzles import Puzzle
from cube_sim.simulator import step
from cube_sim.state_codec import State

from .qtable import QTable, greedy_action


class EmptyPolicyWarning(UserWarning):
    """A queried state has no Q-row; the plan stops early."""


class QPlanner:
    def __init__(self, table: QTable, puzzle: Puzzle, goal_keys: Collection[tuple[int, ...]]):
        if table.n_actions != len(puzzle.moves):
            raise ValueError(
                f"Q-table has {table.n_actions} actions, puzzle {puzzle.name} has {len(puzzle.moves)}"
            )
        self.table = table
        self.puzzle = puzzle
        self.goal_keys = frozenset(goal_keys)

    def solve(self, state: State, max_depth: int) -> list[Move]:
        """Follow the argmax action until a goal state or ``max_depth`` moves.

        Deterministic for a fixed table. If a state was never visited during
        training the moves found so far are returned and EmptyPolicyWarning is issued.
        """
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        state = self.puzzle.validate(state)
        encoder = self.puzzle.encoder
        key = encoder.encode(state)
        plan: list[Move] = []
        while len(plan) < max_depth and key not in self.goal_keys:
            row = self.table.get(key)
            if row is None:
                warnings.warn(f"No Q-value for state {key}; returning partial plan", EmptyPolicyWarning, stacklevel=2)
                break
            move = self.puzzle.moves[greedy_action(row)]
            plan.append(move)
            state = step(state, move)
            key = encoder.encode(state)
        return plan

    def solve_key(self, key: tuple[int, ...], max_depth: int) -> list[Move]:
        return self.solve(self.puzzle.encoder.decode(key), max_depth)
