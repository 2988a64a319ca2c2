"""Puzzle states, validation and the state-key encoders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Sequence


class InvalidStateError(ValueError):
    """Raised when a state or state key is malformed."""


class Piece(NamedTuple):
    identity: int
    orientation: int = 0


@dataclass(frozen=True)
class State:
    """Immutable puzzle configuration: one piece record per slot."""

    pieces: tuple[Piece, ...]
    order: int = 1

    @classmethod
    def solved(cls, n_slots: int, order: int = 1) -> State:
        return cls(tuple(Piece(i, 0) for i in range(n_slots)), order)

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[int]], order: int = 1) -> State:
        return validate_state(cls(tuple(Piece(int(p[0]), int(p[1])) for p in pairs), order))

    @property
    def n_slots(self) -> int:
        return len(self.pieces)

    @property
    def identities(self) -> tuple[int, ...]:
        return tuple(p.identity for p in self.pieces)

    @property
    def orientations(self) -> tuple[int, ...]:
        return tuple(p.orientation for p in self.pieces)

    def slot_of(self, identity: int) -> int:
        for slot, piece in enumerate(self.pieces):
            if piece.identity == identity:
                return slot
        raise InvalidStateError(f"Piece {identity} is not on the puzzle")


def validate_state(state: State, n_slots: int | None = None, order: int | None = None) -> State:
    """Check slot count, that identities form a permutation and that orientations are in range."""
    if not isinstance(state, State):
        raise InvalidStateError(f"Expected a State, got {type(state).__name__}")
    if n_slots is not None and state.n_slots != n_slots:
        raise InvalidStateError(f"State must have {n_slots} slots, got {state.n_slots}")
    if order is not None and state.order != order:
        raise InvalidStateError(f"State orientation order must be {order}, got {state.order}")
    if state.order < 1:
        raise InvalidStateError(f"Orientation order must be >= 1, got {state.order}")
    if sorted(state.identities) != list(range(state.n_slots)):
        raise InvalidStateError("Piece identities must be a permutation of 0..N-1")
    if any(o < 0 or o >= state.order for o in state.orientations):
        raise InvalidStateError(f"Orientations must lie in 0..{state.order - 1}")
    return state


class StateEncoder:
    """Maps a State to a hashable, totally ordered key and back."""

    name = "base"

    def __init__(self, n_slots: int, order: int = 1):
        if n_slots < 1:
            raise ValueError("n_slots must be >= 1")
        self.n_slots = int(n_slots)
        self.order = int(order)

    @property
    def key_size(self) -> int:
        raise NotImplementedError

    def encode(self, state: State) -> tuple[int, ...]:
        raise NotImplementedError

    def decode(self, key: Sequence[int]) -> State:
        raise NotImplementedError

    def validate_key(self, key: Sequence[int]) -> tuple[int, ...]:
        try:
            out = tuple(int(v) for v in key)
        except (TypeError, ValueError) as exc:
            raise InvalidStateError(f"State key must be a sequence of integers: {key!r}") from exc
        if len(out) != self.key_size:
            raise InvalidStateError(f"{self.name} key must have {self.key_size} entries, got {len(out)}")
        return out

    def _check_slots(self, state: State) -> None:
        if len(state.pieces) != self.n_slots:
            raise InvalidStateError(f"State must have {self.n_slots} slots, got {len(state.pieces)}")

    def potential(self, key: tuple[int, ...], goal_key: tuple[int, ...]) -> int:
        """Number of tracked pieces that already match the goal."""
        return sum(1 for a, b in zip(key, goal_key) if a == b)

    def max_potential(self) -> int:
        return self.key_size


class IndexEncoder(StateEncoder):
    """Tracks only the slot of one marked piece."""

    name = "index"

    def __init__(self, n_slots: int, order: int = 1, marked: int = 0):
        super().__init__(n_slots, order)
        if not 0 <= marked < n_slots:
            raise ValueError(f"marked piece must be in 0..{n_slots - 1}")
        self.marked = marked

    @property
    def key_size(self) -> int:
        return 1

    def encode(self, state: State) -> tuple[int, ...]:
        self._check_slots(state)
        return (state.slot_of(self.marked),)

    def validate_key(self, key: Sequence[int]) -> tuple[int, ...]:
        out = super().validate_key(key)
        if not 0 <= out[0] < self.n_slots:
            raise InvalidStateError(f"Slot index must be in 0..{self.n_slots - 1}, got {out[0]}")
        return out

    def decode(self, key: Sequence[int]) -> State:
        slot = self.validate_key(key)[0]
        others = iter(i for i in range(self.n_slots) if i != self.marked)
        pieces = tuple(
            Piece(self.marked if s == slot else next(others), 0) for s in range(self.n_slots)
        )
        return State(pieces, self.order)


class PermutationEncoder(StateEncoder):
    """Tracks which piece sits in every slot, ignoring orientation."""

    name = "permutation"

    @property
    def key_size(self) -> int:
        return self.n_slots

    def encode(self, state: State) -> tuple[int, ...]:
        self._check_slots(state)
        return state.identities

    def validate_key(self, key: Sequence[int]) -> tuple[int, ...]:
        out = super().validate_key(key)
        if sorted(out) != list(range(self.n_slots)):
            raise InvalidStateError("Permutation key must contain every piece exactly once")
        return out

    def decode(self, key: Sequence[int]) -> State:
        ids = self.validate_key(key)
        return State(tuple(Piece(i, 0) for i in ids), self.order)


class PermutationOrientationEncoder(StateEncoder):
    """Tracks piece identity and orientation per slot; key is (id0, o0, id1, o1, ...)."""

    name = "permutation+orientation"

    @property
    def key_size(self) -> int:
        return 2 * self.n_slots

    def encode(self, state: State) -> tuple[int, ...]:
        self._check_slots(state)
        return tuple(v for piece in state.pieces for v in piece)

    def validate_key(self, key: Sequence[int]) -> tuple[int, ...]:
        out = super().validate_key(key)
        ids, oris = out[0::2], out[1::2]
        if sorted(ids) != list(range(self.n_slots)):
            raise InvalidStateError("Key identities must contain every piece exactly once")
        if any(o < 0 or o >= self.order for o in oris):
            raise InvalidStateError(f"Key orientations must lie in 0..{self.order - 1}")
        return out

    def decode(self, key: Sequence[int]) -> State:
        out = self.validate_key(key)
        return State(tuple(Piece(out[i], out[i + 1]) for i in range(0, len(out), 2)), self.order)

    def potential(self, key: tuple[int, ...], goal_key: tuple[int, ...]) -> int:
        return sum(
            1
            for i in range(0, len(key), 2)
            if key[i] == goal_key[i] and key[i + 1] == goal_key[i + 1]
        )

    def max_potential(self) -> int:
        return self.n_slots


ENCODERS = {
    IndexEncoder.name: IndexEncoder,
    PermutationEncoder.name: PermutationEncoder,
    PermutationOrientationEncoder.name: PermutationOrientationEncoder,
}


def key_to_text(key: Sequence[int]) -> str:
    return ",".join(str(int(v)) for v in key)


def key_from_text(text: str) -> tuple[int, ...]:
    parts = [p for p in text.replace(" ", "").split(",") if p]
    try:
        return tuple(int(p) for p in parts)
    except ValueError as exc:
        raise InvalidStateError(f"State key must be comma-separated integers: {text!r}") from exc
