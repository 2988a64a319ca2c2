"""Thread-safe environment handle around a puzzle configuration."""

from __future__ import annotations

import threading
from numbers import Integral
from typing import Any, Iterable, Sequence

import numpy as np

from .moves import Move, MoveSet
from .puzzles import MARKED_CORNER, Puzzle, make_puzzle
from .simulator import apply_moves, step
from .solved_check import goal_keys, is_goal
from .state_codec import InvalidStateError, State


class CubeEnvironment:
    """Holds the current configuration of one puzzle; all access goes through a lock."""

    def __init__(
        self,
        puzzle: Puzzle,
        goal: int | None = None,
        initial: int | State | None = None,
        rotation_invariant_goal: bool = False,
    ):
        self.puzzle = puzzle
        self.goal = goal
        self.rotation_invariant_goal = bool(rotation_invariant_goal)
        self._lock = threading.RLock()
        self._rng = np.random.default_rng()

        self._goal_state = puzzle.solved_state(goal)
        self._goal_keys = goal_keys(puzzle.encoder, self._goal_state, self.rotation_invariant_goal)
        self._state = self._initial_state(initial)
        self.step_count = 0
        self.history: list[str] = []

    def _initial_state(self, initial: int | State | None) -> State:
        if initial is None:
            return self._goal_state
        if isinstance(initial, State):
            return self.puzzle.validate(initial)
        return self.puzzle.state_with_marked_at(int(initial))

    @property
    def moves(self) -> MoveSet:
        return self.puzzle.moves

    def goal_state(self) -> State:
        return self._goal_state

    def goal_keys(self) -> frozenset[tuple[int, ...]]:
        return self._goal_keys

    def get_state(self) -> State:
        with self._lock:
            return self._state

    def current_state_key(self) -> tuple[int, ...]:
        with self._lock:
            return self.puzzle.encoder.encode(self._state)

    def set_state(self, state: State) -> tuple[int, ...]:
        state = self.puzzle.validate(state)
        with self._lock:
            self._state = state
            self.step_count = 0
            self.history = []
            return self.puzzle.encoder.encode(self._state)

    def set_state_key(self, key: Sequence[int]) -> tuple[int, ...]:
        return self.set_state(self.puzzle.encoder.decode(key))

    def reset(self, state: State | None = None) -> tuple[int, ...]:
        with self._lock:
            self._state = self._goal_state if state is None else self.puzzle.validate(state)
            self.step_count = 0
            self.history = []
            return self.puzzle.encoder.encode(self._state)

    def is_solved(self) -> bool:
        with self._lock:
            return is_goal(self.puzzle.encoder.encode(self._state), self._goal_keys)

    def _resolve(self, move: Move | str | int) -> Move:
        try:
            return self.puzzle.moves.resolve(move)
        except (KeyError, TypeError) as exc:
            raise InvalidStateError(f"Illegal move for {self.puzzle.name}: {move!r}") from exc

    def apply_move(self, move: Move | str | int) -> tuple[int, ...]:
        resolved = self._resolve(move)
        with self._lock:
            self._state = step(self._state, resolved)
            self.step_count += 1
            self.history.append(resolved.name)
            return self.puzzle.encoder.encode(self._state)

    def apply_moves(self, moves: Iterable[Move | str | int]) -> tuple[int, ...]:
        resolved = [self._resolve(m) for m in moves]
        with self._lock:
            self._state = apply_moves(self._state, resolved)
            self.step_count += len(resolved)
            self.history.extend(m.name for m in resolved)
            return self.puzzle.encoder.encode(self._state)

    def scramble(self, steps: int, seed: int | None = None) -> tuple[tuple[int, ...], list[str]]:
        if not isinstance(steps, Integral) or isinstance(steps, bool) or steps < 0:
            raise ValueError("Scramble steps must be a non-negative integer")

        with self._lock:
            rng = np.random.default_rng(seed) if seed is not None else self._rng
            action_list = random_move_indices(self.puzzle, int(steps), rng)
            for action in action_list:
                move = self.puzzle.moves[action]
                self._state = step(self._state, move)
                self.step_count += 1
                self.history.append(move.name)
            return self.puzzle.encoder.encode(self._state), [self.puzzle.moves[a].name for a in action_list]

    def state_payload(self) -> dict[str, Any]:
        with self._lock:
            key = self.puzzle.encoder.encode(self._state)
            return {
                "puzzle": self.puzzle.name,
                "key": list(key),
                "step_count": self.step_count,
                "solved": is_goal(key, self._goal_keys),
            }


def random_move_indices(puzzle: Puzzle, steps: int, rng: np.random.Generator) -> list[int]:
    """Uniform random move indices that never undo the previous move directly."""
    all_actions = np.arange(len(puzzle.moves), dtype=np.int64)
    action_list: list[int] = []
    prev_action: int | None = None
    for _ in range(steps):
        inverse_action = None if prev_action is None else puzzle.moves.inverse_index[prev_action]
        if inverse_action is not None and len(all_actions) > 1:
            candidates = all_actions[all_actions != inverse_action]
        else:
            candidates = all_actions
        action = int(rng.choice(candidates))
        action_list.append(action)
        prev_action = action
    return action_list


def new_environment(
    puzzle: str | Puzzle = MARKED_CORNER,
    goal: int | None = None,
    initial: int | State | None = None,
    dims: Sequence[int] | None = None,
    include_primes: bool | None = None,
    rotation_invariant_goal: bool = False,
) -> CubeEnvironment:
    if isinstance(puzzle, str):
        puzzle = make_puzzle(puzzle, dims=dims, include_primes=include_primes)
    return CubeEnvironment(
        puzzle,
        goal=goal,
        initial=initial,
        rotation_invariant_goal=rotation_invariant_goal,
    )
