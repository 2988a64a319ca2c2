import unittest

from cube_sim.puzzles import PUZZLE_NAMES, make_puzzle
from cube_sim.simulator import step
from cube_sim.state_codec import (
    IndexEncoder,
    InvalidStateError,
    PermutationEncoder,
    PermutationOrientationEncoder,
    Piece,
    State,
    key_from_text,
    key_to_text,
    validate_state,
)


class TestStateCodec(unittest.TestCase):
    def test_index_encoder_tracks_marked_piece(self):
        enc = IndexEncoder(8)
        for slot in range(8):
            state = enc.decode((slot,))
            self.assertEqual(state.slot_of(0), slot)
            self.assertEqual(enc.encode(state), (slot,))
            validate_state(state, n_slots=8)

    def test_index_encoder_rejects_bad_keys(self):
        enc = IndexEncoder(8)
        with self.assertRaises(InvalidStateError):
            enc.decode((8,))
        with self.assertRaises(InvalidStateError):
            enc.decode((1, 2))
        with self.assertRaises(InvalidStateError):
            enc.decode(("a",))

    def test_permutation_encoder_rejects_duplicates(self):
        enc = PermutationEncoder(8)
        self.assertEqual(enc.encode(enc.decode((7, 6, 5, 4, 3, 2, 1, 0))), (7, 6, 5, 4, 3, 2, 1, 0))
        with self.assertRaises(InvalidStateError):
            enc.decode((0, 0, 1, 2, 3, 4, 5, 6))
        with self.assertRaises(InvalidStateError):
            enc.decode((0, 1, 2))

    def test_orientation_encoder_layout_and_range(self):
        enc = PermutationOrientationEncoder(8, 3)
        state = State.solved(8, 3)
        key = enc.encode(state)
        self.assertEqual(len(key), 16)
        self.assertEqual(key[:4], (0, 0, 1, 0))
        bad = list(key)
        bad[1] = 3
        with self.assertRaises(InvalidStateError):
            enc.decode(bad)

    def test_encode_rejects_wrong_slot_count(self):
        enc = PermutationEncoder(8)
        with self.assertRaises(InvalidStateError):
            enc.encode(State.solved(7))

    def test_validate_state(self):
        with self.assertRaises(InvalidStateError):
            validate_state(State((Piece(0, 0), Piece(0, 0))))
        with self.assertRaises(InvalidStateError):
            validate_state(State((Piece(0, 1), Piece(1, 0)), order=1))
        with self.assertRaises(InvalidStateError):
            validate_state(State.solved(4), n_slots=8)
        with self.assertRaises(InvalidStateError):
            validate_state((0, 1, 2))
        self.assertEqual(State.from_pairs([(1, 2), (0, 0)], order=3).identities, (1, 0))

    def test_goal_potential_is_maximal(self):
        for name in PUZZLE_NAMES:
            puzzle = make_puzzle(name)
            goal_key = puzzle.encoder.encode(puzzle.solved_state())
            self.assertEqual(puzzle.encoder.potential(goal_key, goal_key), puzzle.encoder.max_potential())

    def test_orientation_potential_needs_both_components(self):
        puzzle = make_puzzle("corners-twist")
        enc = puzzle.encoder
        solved = puzzle.solved_state()
        goal_key = enc.encode(solved)
        # L moves four corners; the other four slots stay solved
        moved = step(solved, puzzle.moves.resolve("L"))
        self.assertEqual(enc.potential(enc.encode(moved), goal_key), 4)
        twisted = State(((Piece(0, 1),) + solved.pieces[1:]), 3)
        self.assertEqual(enc.potential(enc.encode(twisted), goal_key), 7)

    def test_key_text_round_trip(self):
        self.assertEqual(key_from_text(key_to_text((3, 1, 2))), (3, 1, 2))
        self.assertEqual(key_from_text(" 4, 5 "), (4, 5))
        with self.assertRaises(InvalidStateError):
            key_from_text("1,x")


if __name__ == "__main__":
    unittest.main()
