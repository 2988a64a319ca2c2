import threading
import unittest

import numpy as np

from cube_rl.qtable import DEFAULT_Q_VALUE, QTable, greedy_action
from cube_rl.reward import GOAL_BONUS, compute_step_reward, failed_episode_reward, shaping_term


class TestQTable(unittest.TestCase):
    def test_new_rows_hold_default_for_every_action(self):
        table = QTable(6)
        self.assertIsNone(table.get((3,)))
        row = table.row((3,))
        self.assertEqual(row.shape, (6,))
        self.assertTrue(np.all(row == DEFAULT_Q_VALUE))
        self.assertIn((3,), table)
        self.assertEqual(len(table), 1)

    def test_update_creates_both_rows_first(self):
        table = QTable(4, initial_value=0.5)
        new = table.update((0,), 2, reward=1.0, next_key=(1,), alpha=0.5, gamma=0.9)
        # 0.5 + 0.5 * (1.0 + 0.9 * 0.5 - 0.5)
        self.assertAlmostEqual(new, 0.975, places=9)
        self.assertTrue(np.all(table.row((1,)) == 0.5))
        np.testing.assert_allclose(table.row((0,)), [0.5, 0.5, 0.975, 0.5])

    def test_update_rejects_out_of_range_action(self):
        table = QTable(3)
        with self.assertRaises(ValueError):
            table.update((0,), 3, 0.0, (1,), 0.1, 0.9)

    def test_rows_are_copies(self):
        table = QTable(2)
        row = table.row("a")
        row[0] = 100.0
        self.assertEqual(table.value("a", 0), DEFAULT_Q_VALUE)

    def test_argmax_tie_break_picks_first_move(self):
        self.assertEqual(greedy_action(np.array([0.2, 0.5, 0.5])), 1)
        self.assertEqual(greedy_action(np.full((6,), 0.001)), 0)
        table = QTable(3)
        self.assertIsNone(table.best_action("missing"))
        table.row("k")
        self.assertEqual(table.best_action("k"), 0)

    def test_stats(self):
        table = QTable(2, initial_value=1.0)
        self.assertEqual(table.stats(), (0, 0.0))
        table.row("a")
        table.row("b")
        self.assertEqual(table.stats(), (2, 1.0))
        table.clear()
        self.assertEqual(len(table), 0)

    def test_concurrent_updates_never_lose_rows(self):
        table = QTable(6)
        errors = []

        def worker(offset):
            try:
                for i in range(500):
                    table.update((i % 50,), (i + offset) % 6, -1.0, ((i + 1) % 50,), 0.1, 0.9)
                    row = table.get((i % 50,))
                    assert row is not None and row.shape == (6,)
            except AssertionError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(k,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(errors, [])
        self.assertEqual(len(table), 50)
        for key in table.keys():
            self.assertEqual(table.row(key).shape, (6,))


class TestReward(unittest.TestCase):
    def test_step_reward_without_goal(self):
        self.assertAlmostEqual(compute_step_reward(0, 0, 0.9, False, 1), -1.0)
        self.assertAlmostEqual(compute_step_reward(2, 3, 0.9, False, 4), -1.0 + 2.7 - 2.0)
        self.assertAlmostEqual(shaping_term(3, 2, 1.0), -1.0)

    def test_goal_bonus_shrinks_with_steps(self):
        one = compute_step_reward(0, 1, 0.9, True, 1)
        self.assertAlmostEqual(one, -1.0 + 0.9 + GOAL_BONUS - 1.0)
        three = compute_step_reward(0, 1, 0.9, True, 3)
        self.assertAlmostEqual(one - three, 2.0)

    def test_failed_episode_reward(self):
        self.assertEqual(failed_episode_reward(50), -50.0)


if __name__ == "__main__":
    unittest.main()
