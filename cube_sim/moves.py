"""Move algebra for the cube puzzles: grid slice turns and corner face turns."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterator, Sequence

import numpy as np

AXES = ("x", "y", "z")
AXIS_INDEX = {"x": 0, "y": 1, "z": 2}
MIN_DIM = 2
MAX_DIM = 20

N_CORNERS = 8
TWIST_ORDER = 3

# Corner slot -> cubie centre (x, y, z), front face is +z.
CORNER_POSITIONS = (
    (-1, +1, +1),  # 0: front-top-left
    (+1, +1, +1),  # 1: front-top-right
    (-1, -1, +1),  # 2: front-bottom-left
    (+1, -1, +1),  # 3: front-bottom-right
    (-1, +1, -1),  # 4: back-top-left
    (+1, +1, -1),  # 5: back-top-right
    (-1, -1, -1),  # 6: back-bottom-left
    (+1, -1, -1),  # 7: back-bottom-right
)

# Face turn -> permutation vector, perm[dest] = source slot.
CORNER_PERMUTATIONS = {
    "U": (1, 5, 2, 3, 0, 4, 6, 7),
    "D": (0, 1, 3, 7, 4, 5, 2, 6),
    "L": (2, 1, 6, 3, 0, 5, 4, 7),
    "R": (0, 3, 2, 7, 4, 1, 6, 5),
    "F": (1, 3, 0, 2, 4, 5, 6, 7),
    "B": (0, 1, 2, 3, 5, 7, 4, 6),
}

# Face turn -> twist received by the piece leaving each source slot.
# U/D keep the reference axis, so they never twist. Every 4-cycle sums to 0 mod 3.
CORNER_TWISTS = {
    "U": {},
    "D": {},
    "L": {0: 1, 2: 2, 4: 2, 6: 1},
    "R": {1: 2, 3: 1, 5: 1, 7: 2},
    "F": {0: 2, 1: 1, 2: 1, 3: 2},
    "B": {4: 1, 5: 2, 6: 2, 7: 1},
}

FACE_ORDER = ("U", "D", "L", "R", "F", "B")
PRIME_SUFFIX = "Prime"


@dataclass(frozen=True)
class GridTurn:
    """A quarter turn of one layer of an X*Y*Z grid."""

    axis: str
    layer: int
    direction: int

    def __post_init__(self) -> None:
        if self.axis not in AXIS_INDEX:
            raise ValueError(f"Unsupported axis: {self.axis}")
        if self.direction not in (-1, 1):
            raise ValueError(f"direction must be +1 or -1, got {self.direction}")
        if self.layer < 0:
            raise ValueError(f"layer must be non-negative, got {self.layer}")

    @property
    def name(self) -> str:
        return f"{self.axis.upper()}{self.layer}{'' if self.direction == 1 else PRIME_SUFFIX}"

    def reversed(self) -> GridTurn:
        return GridTurn(self.axis, self.layer, -self.direction)


@dataclass(frozen=True)
class Move:
    """A legal action with its derived permutation and orientation-delta vectors."""

    name: str
    perm: tuple[int, ...]
    twist: tuple[int, ...]
    turn: GridTurn | None = None
    inverse_perm: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.perm) != len(self.twist):
            raise ValueError("perm and twist must have the same length")
        if sorted(self.perm) != list(range(len(self.perm))):
            raise ValueError(f"perm of move {self.name} is not a bijection")
        inv = np.argsort(np.asarray(self.perm, dtype=np.int64))
        object.__setattr__(self, "inverse_perm", tuple(int(v) for v in inv))

    @property
    def size(self) -> int:
        return len(self.perm)

    def moved_slots(self) -> tuple[int, ...]:
        return tuple(i for i, src in enumerate(self.perm) if src != i)

    def __str__(self) -> str:
        return self.name


def inverse_name(name: str) -> str:
    if name.endswith(PRIME_SUFFIX):
        return name[: -len(PRIME_SUFFIX)]
    return name + PRIME_SUFFIX


def inverse(move: Move) -> Move:
    """Return the move that undoes ``move``.

    The piece sitting in slot ``s`` after ``move`` came from ``perm[s]`` and was
    twisted by ``twist[perm[s]]``, so the inverse twists it back by the negated
    amount of its *source* slot. Negating the twist table slot-by-slot is only
    correct when the table is symmetric along each cycle.
    """
    inv_twist = tuple((-move.twist[move.perm[s]]) % TWIST_ORDER for s in range(move.size))
    turn = move.turn.reversed() if move.turn is not None else None
    return Move(name=inverse_name(move.name), perm=move.inverse_perm, twist=inv_twist, turn=turn)


def grid_index(coord: tuple[int, int, int], dims: tuple[int, int, int]) -> int:
    i, j, k = coord
    X, Y, _ = dims
    return i + X * j + X * Y * k


def grid_coord(index: int, dims: tuple[int, int, int]) -> tuple[int, int, int]:
    X, Y, _ = dims
    return index % X, (index // X) % Y, index // (X * Y)


def validate_dims(dims: Sequence[int]) -> tuple[int, int, int]:
    if len(dims) != 3:
        raise ValueError(f"dims must have 3 entries, got {len(dims)}")
    out = tuple(int(d) for d in dims)
    for d in out:
        if d < MIN_DIM or d > MAX_DIM:
            raise ValueError(f"Each dimension must be in {MIN_DIM}..{MAX_DIM}, got {out}")
    return out  # type: ignore[return-value]


def transform_coord(
    turn: GridTurn,
    coord: tuple[int, int, int],
    dims: tuple[int, int, int],
) -> tuple[int, int, int]:
    """Rotate ``coord`` by 90 degrees if it lies in the turned layer, else return it unchanged."""
    i, j, k = coord
    X, Y, Z = dims
    if turn.axis == "x" and i == turn.layer:
        if turn.direction == 1:
            j, k = k, Z - 1 - j
        else:
            j, k = Z - 1 - k, j
    elif turn.axis == "y" and j == turn.layer:
        if turn.direction == 1:
            i, k = k, Z - 1 - i
        else:
            i, k = Z - 1 - k, i
    elif turn.axis == "z" and k == turn.layer:
        if turn.direction == 1:
            i, j = j, Y - 1 - i
        else:
            i, j = Y - 1 - j, i
    return i, j, k


def axis_is_turnable(axis: str, dims: tuple[int, int, int]) -> bool:
    """A quarter turn only maps a layer onto itself when its cross-section is square."""
    others = [d for a, d in zip(AXES, dims) if a != axis]
    return others[0] == others[1]


@lru_cache(maxsize=None)
def grid_move(turn: GridTurn, dims: tuple[int, int, int]) -> Move:
    dims = validate_dims(dims)
    if turn.layer >= dims[AXIS_INDEX[turn.axis]]:
        raise ValueError(f"layer {turn.layer} out of range for axis {turn.axis} with dims {dims}")
    if not axis_is_turnable(turn.axis, dims):
        raise ValueError(f"Axis {turn.axis} has a non-square cross-section for dims {dims}")

    size = dims[0] * dims[1] * dims[2]
    perm = np.empty(size, dtype=np.int64)
    for old_idx in range(size):
        new_coord = transform_coord(turn, grid_coord(old_idx, dims), dims)
        perm[grid_index(new_coord, dims)] = old_idx
    return Move(name=turn.name, perm=tuple(int(v) for v in perm), twist=(0,) * size, turn=turn)


def grid_moves(dims: Sequence[int]) -> tuple[Move, ...]:
    """All legal slice turns for ``dims``: per axis, per layer, clockwise then counter-clockwise."""
    dims = validate_dims(dims)
    moves: list[Move] = []
    for axis in AXES:
        if not axis_is_turnable(axis, dims):
            continue
        for layer in range(dims[AXIS_INDEX[axis]]):
            for direction in (1, -1):
                moves.append(grid_move(GridTurn(axis, layer, direction), dims))
    if not moves:
        raise ValueError(f"No turnable axis for dims {dims}")
    return tuple(moves)


def _corner_face_move(face: str) -> Move:
    perm = CORNER_PERMUTATIONS[face]
    twist = tuple(CORNER_TWISTS[face].get(s, 0) for s in range(N_CORNERS))
    return Move(name=face, perm=perm, twist=twist)


@lru_cache(maxsize=None)
def corner_moves(include_primes: bool = False, twist: bool = True) -> tuple[Move, ...]:
    """Face turns on the 8 corners; primes are the explicit inverses of each face turn."""
    faces = [_corner_face_move(face) for face in FACE_ORDER]
    if not twist:
        faces = [Move(name=m.name, perm=m.perm, twist=(0,) * N_CORNERS) for m in faces]
    if not include_primes:
        return tuple(faces)
    return tuple(faces) + tuple(inverse(m) for m in faces)


class MoveSet:
    """Stable enumeration of a puzzle's legal moves; indices address Q-table columns."""

    def __init__(self, moves: Sequence[Move]):
        if not moves:
            raise ValueError("MoveSet requires at least one move")
        sizes = {m.size for m in moves}
        if len(sizes) != 1:
            raise ValueError(f"All moves must act on the same slot count, got {sorted(sizes)}")
        self.moves = tuple(moves)
        self.n_slots = sizes.pop()
        self._index = {m.name: i for i, m in enumerate(self.moves)}
        if len(self._index) != len(self.moves):
            raise ValueError("Move names must be unique")
        self.inverse_index: tuple[int | None, ...] = tuple(
            self._index.get(inverse_name(m.name)) for m in self.moves
        )

    def __len__(self) -> int:
        return len(self.moves)

    def __iter__(self) -> Iterator[Move]:
        return iter(self.moves)

    def __getitem__(self, item: int) -> Move:
        return self.moves[item]

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.moves]

    def index(self, move: Move | str | int) -> int:
        if isinstance(move, Move):
            move = move.name
        if isinstance(move, str):
            if move not in self._index:
                raise KeyError(f"Unknown move: {move}")
            return self._index[move]
        if isinstance(move, (int, np.integer)) and not isinstance(move, bool):
            if not 0 <= int(move) < len(self.moves):
                raise KeyError(f"Move index out of range: {move}")
            return int(move)
        raise TypeError(f"Unsupported move reference: {move!r}")

    def resolve(self, move: Move | str | int) -> Move:
        return self.moves[self.index(move)]


def _rotation_matrix(axis: str, angle_deg: int) -> np.ndarray:
    """Return integer rotation matrix for +/-90 around x/y/z axes."""
    if axis == "x" and angle_deg == +90:
        return np.array([[1, 0, 0], [0, 0, -1], [0, 1, 0]], dtype=np.int8)
    if axis == "x" and angle_deg == -90:
        return np.array([[1, 0, 0], [0, 0, 1], [0, -1, 0]], dtype=np.int8)
    if axis == "y" and angle_deg == +90:
        return np.array([[0, 0, 1], [0, 1, 0], [-1, 0, 0]], dtype=np.int8)
    if axis == "y" and angle_deg == -90:
        return np.array([[0, 0, -1], [0, 1, 0], [1, 0, 0]], dtype=np.int8)
    if axis == "z" and angle_deg == +90:
        return np.array([[0, -1, 0], [1, 0, 0], [0, 0, 1]], dtype=np.int8)
    if axis == "z" and angle_deg == -90:
        return np.array([[0, 1, 0], [-1, 0, 0], [0, 0, 1]], dtype=np.int8)
    raise ValueError(f"Unsupported rotation: axis={axis}, angle={angle_deg}")


def _matrix_key(mat: np.ndarray) -> tuple[int, ...]:
    return tuple(int(v) for v in mat.reshape(-1))


def _generate_global_orientation_matrices() -> list[np.ndarray]:
    gens = [_rotation_matrix("x", +90), _rotation_matrix("y", +90), _rotation_matrix("z", +90)]
    identity = np.eye(3, dtype=np.int8)

    mats: list[np.ndarray] = []
    seen: set[tuple[int, ...]] = set()
    q: deque[np.ndarray] = deque([identity])

    while q:
        mat = q.popleft()
        key = _matrix_key(mat)
        if key in seen:
            continue
        seen.add(key)
        mats.append(mat)
        for g in gens:
            q.append(g @ mat)

    if len(mats) != 24:
        raise RuntimeError(f"Expected 24 orientation matrices, got {len(mats)}")
    return mats


def corner_permutation_for_matrix(mat: np.ndarray) -> tuple[int, ...]:
    """Slot permutation (perm[dest] = source) induced on the corners by a rigid rotation."""
    slot_of = {pos: slot for slot, pos in enumerate(CORNER_POSITIONS)}
    perm = [0] * N_CORNERS
    for slot, pos in enumerate(CORNER_POSITIONS):
        new_pos = tuple(int(v) for v in mat @ np.asarray(pos, dtype=np.int8))
        if new_pos not in slot_of:
            raise ValueError(f"Matrix does not map corner {slot} onto a corner")
        perm[slot_of[new_pos]] = slot
    return tuple(perm)


ORIENTATION_MATRICES = tuple(_generate_global_orientation_matrices())
CORNER_ROTATION_PERMUTATIONS = tuple(corner_permutation_for_matrix(m) for m in ORIENTATION_MATRICES)
