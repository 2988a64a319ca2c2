"""Goal-set construction and goal tests."""

from __future__ import annotations

from typing import Collection

from .moves import CORNER_ROTATION_PERMUTATIONS, N_CORNERS
from .state_codec import PermutationEncoder, Piece, State, StateEncoder


def rotated_states(state: State) -> list[State]:
    """All 24 images of a corner configuration under global rotations of the cube."""
    if state.n_slots != N_CORNERS:
        raise ValueError(f"Global rotations are defined for {N_CORNERS} corners, got {state.n_slots}")
    out: list[State] = []
    for perm in CORNER_ROTATION_PERMUTATIONS:
        out.append(State(tuple(Piece(state.pieces[s].identity, 0) for s in perm), state.order))
    return out


def goal_keys(
    encoder: StateEncoder,
    solved: State,
    rotation_invariant: bool = False,
) -> frozenset[tuple[int, ...]]:
    """Key set counted as solved: the canonical key, or its whole rotation class.

    Rotation classes are only defined for the permutation encoder; twist labels
    have no rotation-independent reference and a single marked piece would make
    every slot a goal.
    """
    canonical = encoder.encode(solved)
    if not rotation_invariant:
        return frozenset([canonical])
    if not isinstance(encoder, PermutationEncoder):
        raise ValueError(f"Rotation-invariant goals are not supported for the {encoder.name} encoder")
    return frozenset(encoder.encode(s) for s in rotated_states(solved))


def is_goal(key: tuple[int, ...], goal_set: Collection[tuple[int, ...]]) -> bool:
    return tuple(key) in goal_set


def goal_potential(encoder: StateEncoder, key: tuple[int, ...], goal_set: Collection[tuple[int, ...]]) -> int:
    """Potential = best match count over every accepted goal key."""
    best = 0
    for goal in goal_set:
        m = encoder.potential(key, goal)
        if m > best:
            best = m
    return best
