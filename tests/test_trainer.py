import contextlib
import io
import threading
import time
import unittest
import warnings

from cube_rl.qtable import QTable
from cube_rl.trainer import (
    QLearningTrainer,
    TrainingAlreadyActive,
    TrainingConfig,
    TrainingHandle,
    TrainingSession,
    alpha_at,
    epsilon_at,
    start_training,
)
from cube_rl.types import CANCELLED, CONVERGED, EXHAUSTED, IDLE
from cube_sim.engine import new_environment
from cube_sim.moves import grid_coord


def marked_corner_config(**overrides) -> TrainingConfig:
    values = dict(
        alpha=0.5,
        gamma=0.9,
        initial_epsilon=1.0,
        min_epsilon=0.01,
        decay_rate=0.01,
        max_steps=20,
        window_size=50,
        target_reward=98.0,
        min_alpha=0.01,
        alpha_decay=0.999,
        max_episodes=1500,
        seed=7,
        log_interval=0,
    )
    values.update(overrides)
    return TrainingConfig(**values)


def endless_config(**overrides) -> TrainingConfig:
    values = dict(max_episodes=None, target_reward=1000.0, max_steps=10, scramble_moves=6, seed=1, log_interval=0)
    values.update(overrides)
    return TrainingConfig(**values)


class QuietTestCase(unittest.TestCase):
    def setUp(self):
        self._stdout = contextlib.redirect_stdout(io.StringIO())
        self._stdout.__enter__()

    def tearDown(self):
        self._stdout.__exit__(None, None, None)


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        cfg = TrainingConfig()
        self.assertEqual(cfg.alpha, 0.1)
        self.assertEqual(cfg.gamma, 0.9)
        self.assertEqual(cfg.initial_epsilon, 1.0)
        self.assertEqual(cfg.min_epsilon, 0.01)
        self.assertEqual(cfg.decay_rate, 0.00001)
        self.assertEqual(cfg.max_steps, 50)
        self.assertEqual(cfg.window_size, 50)
        self.assertEqual(cfg.target_reward, 99.9)
        self.assertIsNone(cfg.max_episodes)

    def test_from_dict_rejects_unknown_keys(self):
        cfg = TrainingConfig.from_dict({"alpha": 0.3})
        self.assertEqual(cfg.alpha, 0.3)
        self.assertEqual(TrainingConfig.from_dict(cfg.to_dict()), cfg)
        with self.assertRaises(ValueError):
            TrainingConfig.from_dict({"learning_rate": 0.3})

    def test_validate(self):
        for bad in (
            dict(alpha=0.0),
            dict(gamma=1.5),
            dict(min_epsilon=0.5, initial_epsilon=0.1),
            dict(max_steps=0),
            dict(window_size=0),
            dict(max_episodes=0),
            dict(decay_rate=-1.0),
        ):
            with self.assertRaises(ValueError, msg=str(bad)):
                TrainingConfig(**bad).validate()

    def test_schedules_respect_floors(self):
        cfg = TrainingConfig(initial_epsilon=1.0, min_epsilon=0.05, decay_rate=0.1, alpha=0.5, min_alpha=0.1, alpha_decay=0.5)
        self.assertAlmostEqual(epsilon_at(cfg, 0), 1.0)
        self.assertLess(epsilon_at(cfg, 10), 1.0)
        self.assertEqual(epsilon_at(cfg, 10_000), 0.05)
        self.assertAlmostEqual(alpha_at(cfg, 1), 0.25)
        self.assertEqual(alpha_at(cfg, 50), 0.1)
        values = [epsilon_at(cfg, ep) for ep in range(100)]
        self.assertEqual(values, sorted(values, reverse=True))


class TestForegroundTraining(QuietTestCase):
    def test_marked_corner_reward_regression(self):
        env = new_environment("marked-corner", goal=1)
        trainer = QLearningTrainer(marked_corner_config())
        final = trainer.run(env, progress=False)

        self.assertIn(final.outcome, (CONVERGED, EXHAUSTED))
        self.assertEqual(final.state, IDLE)
        self.assertEqual(final.window_fill, 50)
        self.assertGreaterEqual(final.average_reward, 90.0)
        self.assertLessEqual(final.q_states, 8)
        self.assertFalse(trainer.is_training)

        for slot in range(8):
            plan = trainer.solve(env, from_key=(slot,))
            self.assertLessEqual(len(plan), trainer.config.max_steps, msg=f"slot {slot}")
            env.set_state_key((slot,))
            env.apply_moves(plan)
            self.assertTrue(env.is_solved(), msg=f"slot {slot} plan={[m.name for m in plan]}")

    def test_failed_episodes_score_minus_max_steps(self):
        env = new_environment("corners-twist")
        trainer = QLearningTrainer(endless_config(max_steps=1, max_episodes=40))
        results = []
        final = trainer.run(env, progress=False, on_episode=lambda r, s: results.append(r))

        self.assertEqual(final.outcome, EXHAUSTED)
        self.assertEqual(len(results), 40)
        self.assertEqual([r.episode for r in results], list(range(1, 41)))
        for r in results:
            if not r.solved:
                self.assertEqual(r.total_reward, -1.0)
                self.assertEqual(r.steps, 1)

    def test_start_states_are_never_goals(self):
        env = new_environment("marked-corner", goal=4)
        trainer = QLearningTrainer(marked_corner_config())
        trainer._prepare(env)
        for _ in range(200):
            start = trainer._sample_start()
            self.assertNotEqual(env.puzzle.encoder.encode(start), (4,))

    def test_same_seed_gives_same_run(self):
        env = new_environment("corners")
        cfg = endless_config(max_episodes=30, seed=42)
        a = QLearningTrainer(cfg).run(env, progress=False)
        b = QLearningTrainer(cfg).run(env, progress=False)
        self.assertEqual(a.average_reward, b.average_reward)
        self.assertEqual(a.q_states, b.q_states)

    def test_rotation_invariant_corners_improve_over_training(self):
        env = new_environment("corners", include_primes=True, rotation_invariant_goal=True)
        self.assertEqual(len(env.goal_keys()), 24)
        trainer = QLearningTrainer(marked_corner_config(max_episodes=2000, scramble_moves=2, decay_rate=0.005, seed=5))
        rewards = []
        final = trainer.run(env, progress=False, on_episode=lambda r, s: rewards.append(r.total_reward))

        self.assertEqual(len(rewards), final.episode)
        early = sum(rewards[:50]) / 50
        self.assertGreater(final.average_reward, early)

    def test_potential_does_not_drop_over_training(self):
        env = new_environment("marked-corner", goal=1)
        trainer = QLearningTrainer(marked_corner_config())
        potentials = []
        trainer.run(env, progress=False, on_episode=lambda r, s: potentials.append(r.potential))

        self.assertGreaterEqual(len(potentials), 200)
        first = sum(potentials[:100]) / 100
        last = sum(potentials[-100:]) / 100
        self.assertGreaterEqual(last, first)

    def test_grid_reward_regression(self):
        env = new_environment("grid", goal=1, dims=(2, 2, 2))
        trainer = QLearningTrainer(marked_corner_config(max_episodes=3000, seed=1))
        final = trainer.run(env, progress=False)

        self.assertIn(final.outcome, (CONVERGED, EXHAUSTED))
        self.assertGreaterEqual(final.average_reward, 90.0)
        for slot in range(8):
            plan = trainer.solve(env, from_key=(slot,))
            env.set_state_key((slot,))
            env.apply_moves(plan)
            self.assertTrue(env.is_solved(), msg=f"slot {slot} plan={[m.name for m in plan]}")

    def test_grid_starts_stay_in_goal_orbit(self):
        env = new_environment("grid", goal=0, dims=(3, 3, 3))
        trainer = QLearningTrainer(marked_corner_config())
        trainer._prepare(env)
        for _ in range(200):
            slot = env.puzzle.encoder.encode(trainer._sample_start())[0]
            self.assertNotEqual(slot, 0)
            self.assertTrue(all(c in (0, 2) for c in grid_coord(slot, (3, 3, 3))), msg=f"slot {slot}")

    def test_unreachable_goal_is_rejected(self):
        # slot 13 is the centre of a 3x3x3 grid; no turn moves it
        env = new_environment("grid", goal=13, dims=(3, 3, 3))
        trainer = QLearningTrainer(marked_corner_config())
        with self.assertRaises(ValueError):
            trainer.run(env, progress=False)
        self.assertFalse(trainer.is_training)


class TestBackgroundTraining(QuietTestCase):
    def test_cancel_fires_callback_once_and_leaves_table_readable(self):
        env = new_environment("corners-twist")
        calls = []
        done = threading.Event()

        def on_complete(progress):
            calls.append(progress)
            done.set()

        trainer, handle = start_training(env, endless_config(), on_complete=on_complete)
        time.sleep(0.2)
        self.assertTrue(trainer.is_training)
        handle.cancel()
        self.assertTrue(handle.wait(timeout=10.0))
        self.assertTrue(done.wait(timeout=1.0))

        final = handle.result(timeout=0)
        self.assertEqual(final.outcome, CANCELLED)
        self.assertEqual(final.state, IDLE)
        self.assertEqual(len(calls), 1)
        self.assertIs(calls[0], final)
        self.assertFalse(trainer.is_training)

        handle._complete(final)
        self.assertEqual(len(calls), 1)

        self.assertGreater(len(handle.table), 0)
        for key in handle.table.keys():
            self.assertEqual(handle.table.row(key).shape, (len(env.moves),))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            plan = trainer.solve(env, from_key=env.scramble(4, seed=3)[0], max_depth=5)
        self.assertLessEqual(len(plan), 5)

    def test_second_start_warns_and_returns_active_handle(self):
        env = new_environment("corners-twist")
        trainer = QLearningTrainer(endless_config())
        handle = trainer.start(env)
        try:
            with self.assertWarns(TrainingAlreadyActive):
                again = trainer.start(env)
            self.assertIs(again, handle)
            with self.assertWarns(TrainingAlreadyActive):
                trainer.run(env, progress=False)
        finally:
            handle.cancel()
            self.assertTrue(handle.wait(timeout=10.0))

        self.assertEqual(handle.progress().outcome, CANCELLED)
        restarted = trainer.start(env)
        restarted.cancel()
        self.assertTrue(restarted.wait(timeout=10.0))
        self.assertIsNot(restarted, handle)

    def test_budget_ends_background_session(self):
        env = new_environment("marked-corner")
        trainer, handle = start_training(env, marked_corner_config(max_episodes=20))
        final = handle.result(timeout=30.0)
        self.assertEqual(final.outcome, EXHAUSTED)
        self.assertEqual(final.episode, 20)

    def test_progress_snapshot_while_running(self):
        env = new_environment("corners")
        trainer, handle = start_training(env, endless_config())
        try:
            time.sleep(0.1)
            snap = handle.progress()
            self.assertGreaterEqual(snap.episode, 0)
            self.assertLessEqual(snap.window_fill, 50)
        finally:
            trainer.cancel()
            self.assertTrue(handle.wait(timeout=10.0))

    def test_result_without_final_snapshot_raises(self):
        handle = TrainingHandle(TrainingSession(), QTable(6))
        handle.done.set()
        with self.assertRaises(RuntimeError):
            handle.result(timeout=0)


if __name__ == "__main__":
    unittest.main()
