"""Pure transition function: apply a move to a state."""

from __future__ import annotations

from typing import Iterable

from .moves import Move
from .state_codec import InvalidStateError, Piece, State


def step(state: State, move: Move) -> State:
    """Return the state reached by applying ``move``; ``state`` is left untouched.

    Slot ``i`` receives the piece from ``move.perm[i]``, twisted by the delta of
    that source slot modulo the state's orientation order.
    """
    if len(state.pieces) != move.size:
        raise InvalidStateError(
            f"Move {move.name} acts on {move.size} slots, state has {len(state.pieces)}"
        )
    src = state.pieces
    order = state.order
    pieces = tuple(
        Piece(src[s].identity, (src[s].orientation + move.twist[s]) % order) for s in move.perm
    )
    return State(pieces, order)


def apply_moves(state: State, moves: Iterable[Move]) -> State:
    for move in moves:
        state = step(state, move)
    return state
