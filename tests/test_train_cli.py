import contextlib
import io
import tempfile
import unittest
from dataclasses import fields
from pathlib import Path

from cube_rl.train import build_parser, config_from_args, parse_args, run_training
from cube_rl.trainer import TrainingConfig
from cube_rl.types import EXHAUSTED


class TestTrainCLI(unittest.TestCase):
    def test_parser_defaults_mirror_config(self):
        args = build_parser().parse_args([])
        base = TrainingConfig()
        for f in fields(TrainingConfig):
            self.assertEqual(getattr(args, f.name), getattr(base, f.name), msg=f.name)
        self.assertEqual(args.puzzle, "marked-corner")
        self.assertTrue(args.tensorboard)
        self.assertEqual(args.tensorboard_logdir, "runs/cube_qlearning")
        self.assertEqual(args.progress, "on")

    def test_yaml_config_supplies_defaults(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "cfg.yaml"
            path.write_text(
                "puzzle:\n  name: corners\n  rotation_invariant_goal: true\n"
                "training:\n  alpha: 0.25\n  max_episodes: 10\n  tensorboard: false\n",
                encoding="utf-8",
            )
            args = parse_args(["--config", str(path), "--gamma", "0.5"])
        self.assertEqual(args.puzzle, "corners")
        self.assertTrue(args.rotation_invariant_goal)
        self.assertFalse(args.tensorboard)
        cfg = config_from_args(args)
        self.assertEqual(cfg.alpha, 0.25)
        self.assertEqual(cfg.gamma, 0.5)
        self.assertEqual(cfg.max_episodes, 10)

    def test_smoke_training_without_tensorboard(self):
        args = parse_args(
            [
                "--max-episodes", "30",
                "--seed", "3",
                "--log-interval", "10",
                "--no-tensorboard",
                "--progress", "off",
                "--demo-scramble", "2",
            ]
        )
        buf = io.StringIO()
        with contextlib.redirect_stdout(buf):
            out = run_training(args)
        self.assertEqual(out["progress"].outcome, EXHAUSTED)
        self.assertEqual(len(out["rewards"]), 30)
        self.assertIsNone(out["tb_logdir"])
        text = buf.getvalue()
        self.assertIn("trainer_init", text)
        self.assertIn("episode_stats episode=10", text)
        self.assertIn("demo_solve", text)

    def test_tensorboard_events_written(self):
        with tempfile.TemporaryDirectory() as td:
            args = parse_args(
                [
                    "--max-episodes", "5",
                    "--seed", "0",
                    "--log-interval", "0",
                    "--tensorboard-logdir", td,
                    "--exp-name", "smoke",
                    "--progress", "off",
                    "--demo-scramble", "0",
                ]
            )
            with contextlib.redirect_stdout(io.StringIO()):
                out = run_training(args)
            logdir = Path(out["tb_logdir"])
            self.assertEqual(logdir.parent, Path(td) / "smoke")
            self.assertTrue(any(p.name.startswith("events.out.tfevents") for p in logdir.iterdir()))
            self.assertEqual(out["plan"], [])


if __name__ == "__main__":
    unittest.main()
