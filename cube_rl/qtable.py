"""Lock-protected two-level Q-table: state key -> row of action values."""

from __future__ import annotations

import threading
from typing import Hashable

import numpy as np

DEFAULT_Q_VALUE = 0.001


def greedy_action(row: np.ndarray) -> int:
    """Index of the highest value; ties go to the lowest move index."""
    return int(np.argmax(row))


class QTable:
    """Rows are fixed-size float arrays indexed by the puzzle's move enumeration.

    A row is created with every action at ``initial_value`` before anything
    reads or updates it, and only under the table lock, so readers never see a
    half-built row. Accessors hand out copies.
    """

    def __init__(self, n_actions: int, initial_value: float = DEFAULT_Q_VALUE):
        if n_actions < 1:
            raise ValueError("n_actions must be >= 1")
        self.n_actions = int(n_actions)
        self.initial_value = float(initial_value)
        self._rows: dict[Hashable, np.ndarray] = {}
        self._lock = threading.RLock()

    def _ensure_row(self, key: Hashable) -> np.ndarray:
        row = self._rows.get(key)
        if row is None:
            row = np.full((self.n_actions,), self.initial_value, dtype=np.float64)
            self._rows[key] = row
        return row

    def row(self, key: Hashable) -> np.ndarray:
        """Return a copy of the row for ``key``, creating it if absent."""
        with self._lock:
            return self._ensure_row(key).copy()

    def get(self, key: Hashable) -> np.ndarray | None:
        """Return a copy of the row for ``key`` or None if it was never visited."""
        with self._lock:
            row = self._rows.get(key)
            return None if row is None else row.copy()

    def value(self, key: Hashable, action: int) -> float:
        with self._lock:
            return float(self._ensure_row(key)[action])

    def update(
        self,
        key: Hashable,
        action: int,
        reward: float,
        next_key: Hashable,
        alpha: float,
        gamma: float,
    ) -> float:
        """One-step Q-learning update; returns the new Q(key, action)."""
        if not 0 <= action < self.n_actions:
            raise ValueError(f"action must be in range 0..{self.n_actions - 1}")
        with self._lock:
            row = self._ensure_row(key)
            next_row = self._ensure_row(next_key)
            max_next = float(np.max(next_row))
            old = float(row[action])
            row[action] = old + alpha * (reward + gamma * max_next - old)
            return float(row[action])

    def best_action(self, key: Hashable) -> int | None:
        row = self.get(key)
        return None if row is None else greedy_action(row)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._rows

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._rows.keys())

    def snapshot(self) -> dict[Hashable, np.ndarray]:
        with self._lock:
            return {k: v.copy() for k, v in self._rows.items()}

    def stats(self) -> tuple[int, float]:
        """(number of states, mean Q-value over every stored entry)."""
        with self._lock:
            n = len(self._rows)
            if n == 0:
                return 0, 0.0
            total = sum(float(v.sum()) for v in self._rows.values())
            return n, total / (n * self.n_actions)
