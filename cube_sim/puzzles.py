"""Puzzle variants: slot count, orientation order, move set and state encoder."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .moves import N_CORNERS, TWIST_ORDER, MoveSet, corner_moves, grid_moves, validate_dims
from .state_codec import (
    IndexEncoder,
    InvalidStateError,
    PermutationEncoder,
    PermutationOrientationEncoder,
    State,
    StateEncoder,
    validate_state,
)

MARKED_CORNER = "marked-corner"
GRID = "grid"
CORNERS = "corners"
CORNERS_TWIST = "corners-twist"
PUZZLE_NAMES = (MARKED_CORNER, GRID, CORNERS, CORNERS_TWIST)

# How training draws a start state.
START_UNIFORM = "uniform"
START_SCRAMBLE = "scramble"

DEFAULT_MARKED_GOAL = 1
DEFAULT_GRID_DIMS = (2, 2, 2)


@dataclass(frozen=True)
class Puzzle:
    name: str
    moves: MoveSet
    encoder: StateEncoder
    order: int
    start_mode: str
    dims: tuple[int, int, int] | None = None

    @property
    def n_slots(self) -> int:
        return self.moves.n_slots

    @property
    def tracks_marked_piece(self) -> bool:
        return isinstance(self.encoder, IndexEncoder)

    def solved_state(self, goal: int | None = None) -> State:
        """Canonical goal configuration; ``goal`` is the target slot of the marked piece."""
        if self.tracks_marked_piece:
            slot = DEFAULT_MARKED_GOAL if goal is None else int(goal)
            return self.state_with_marked_at(slot)
        if goal is not None:
            raise ValueError(f"Puzzle {self.name} has a fixed solved state; goal is not supported")
        return State.solved(self.n_slots, self.order)

    def state_with_marked_at(self, slot: int) -> State:
        if not self.tracks_marked_piece:
            raise ValueError(f"Puzzle {self.name} does not track a marked piece")
        return self.encoder.decode((slot,))

    def reachable_slots(self, slot: int) -> frozenset[int]:
        """Slots the marked piece can travel between, starting from ``slot``.

        Moves are permutations, so the set is closed in both directions. On grids
        of side 3 or more, corner, edge and centre slots form separate sets.
        """
        if not 0 <= slot < self.n_slots:
            raise InvalidStateError(f"Slot must be in 0..{self.n_slots - 1}, got {slot}")
        seen = {slot}
        frontier = [slot]
        while frontier:
            current = frontier.pop()
            for move in self.moves:
                nxt = move.inverse_perm[current]
                if nxt not in seen:
                    seen.add(nxt)
                    frontier.append(nxt)
        return frozenset(seen)

    def validate(self, state: State) -> State:
        if len(state.pieces) != self.n_slots:
            raise InvalidStateError(f"{self.name} state must have {self.n_slots} slots, got {len(state.pieces)}")
        if state.order != self.order:
            raise InvalidStateError(f"{self.name} state must use orientation order {self.order}")
        return validate_state(state)


def make_puzzle(
    name: str = MARKED_CORNER,
    dims: Sequence[int] | None = None,
    include_primes: bool | None = None,
) -> Puzzle:
    if name == MARKED_CORNER:
        moves = MoveSet(corner_moves(include_primes=bool(include_primes), twist=False))
        return Puzzle(name, moves, IndexEncoder(N_CORNERS), 1, START_UNIFORM)

    if name == GRID:
        d = validate_dims(DEFAULT_GRID_DIMS if dims is None else dims)
        moves = MoveSet(grid_moves(d))
        return Puzzle(name, moves, IndexEncoder(moves.n_slots), 1, START_UNIFORM, dims=d)

    if name == CORNERS:
        moves = MoveSet(corner_moves(include_primes=bool(include_primes), twist=False))
        return Puzzle(name, moves, PermutationEncoder(N_CORNERS), 1, START_SCRAMBLE)

    if name == CORNERS_TWIST:
        primes = True if include_primes is None else bool(include_primes)
        moves = MoveSet(corner_moves(include_primes=primes, twist=True))
        encoder = PermutationOrientationEncoder(N_CORNERS, TWIST_ORDER)
        return Puzzle(name, moves, encoder, TWIST_ORDER, START_SCRAMBLE)

    raise ValueError(f"Unknown puzzle {name!r}; expected one of {', '.join(PUZZLE_NAMES)}")
