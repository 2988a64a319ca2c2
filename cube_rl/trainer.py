"""Tabular Q-learning trainer: epsilon-greedy rollouts, shaped rewards, windowed convergence."""

from __future__ import annotations

import math
import threading
import warnings
from collections import deque
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import numpy as np
import yaml
from tqdm import tqdm

from cube_sim.engine import CubeEnvironment, random_move_indices
from cube_sim.moves import Move
from cube_sim.puzzles import START_UNIFORM, Puzzle
from cube_sim.simulator import apply_moves, step
from cube_sim.solved_check import goal_potential
from cube_sim.state_codec import State

from .planner import QPlanner
from .qtable import DEFAULT_Q_VALUE, QTable, greedy_action
from .reward import compute_step_reward, failed_episode_reward
from .types import CANCELLED, CONVERGED, EXHAUSTED, IDLE, TRAINING, EpisodeResult, TrainingProgress

FAILED = "failed"
MAX_START_DRAWS = 1000


class TrainingAlreadyActive(RuntimeWarning):
    """Training was requested while a session is still running."""


@dataclass
class TrainingConfig:
    alpha: float = 0.1
    gamma: float = 0.9
    initial_epsilon: float = 1.0
    min_epsilon: float = 0.01
    decay_rate: float = 0.00001
    max_steps: int = 50
    window_size: int = 50
    target_reward: float = 99.9
    min_alpha: float = 0.001
    alpha_decay: float = 0.9999
    initial_q: float = DEFAULT_Q_VALUE
    max_episodes: int | None = None
    scramble_moves: int = 10
    seed: int | None = None
    log_interval: int = 500

    def validate(self) -> None:
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        if not 0.0 < self.min_alpha <= self.alpha:
            raise ValueError("min_alpha must be in (0, alpha]")
        if not 0.0 < self.alpha_decay <= 1.0:
            raise ValueError("alpha_decay must be in (0, 1]")
        if not 0.0 <= self.gamma <= 1.0:
            raise ValueError("gamma must be in [0, 1]")
        if not 0.0 <= self.min_epsilon <= self.initial_epsilon <= 1.0:
            raise ValueError("Require 0 <= min_epsilon <= initial_epsilon <= 1")
        if self.decay_rate < 0.0:
            raise ValueError("decay_rate must be >= 0")
        if self.max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        if self.window_size < 1:
            raise ValueError("window_size must be >= 1")
        if self.max_episodes is not None and self.max_episodes < 1:
            raise ValueError("max_episodes must be >= 1 when set")
        if self.scramble_moves < 1:
            raise ValueError("scramble_moves must be >= 1")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TrainingConfig:
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown training config keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(path: str | Path) -> dict:
    """Load YAML config. Returns dict with 'puzzle' and 'training' keys."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def epsilon_at(config: TrainingConfig, episode: int) -> float:
    return max(config.min_epsilon, config.initial_epsilon * math.exp(-config.decay_rate * episode))


def alpha_at(config: TrainingConfig, episode: int) -> float:
    return max(config.min_alpha, config.alpha * config.alpha_decay**episode)


class TrainingSession:
    """Counters for one training run; read from other threads without locking."""

    def __init__(self, window_size: int = 1):
        self.state = IDLE
        self.reset(window_size)

    def reset(self, window_size: int) -> None:
        self.outcome: str | None = None
        self.episode = 0
        self.epsilon = 0.0
        self.alpha = 0.0
        self.last_reward = 0.0
        self.max_reward = -math.inf
        self.average_reward = 0.0
        self.best_average_reward = -math.inf
        self.window: deque[float] = deque(maxlen=window_size)
        self.cancel_event = threading.Event()

    def record(self, result: EpisodeResult) -> float:
        self.episode = result.episode
        self.epsilon = result.epsilon
        self.alpha = result.alpha
        self.last_reward = result.total_reward
        if result.total_reward > self.max_reward:
            self.max_reward = result.total_reward
        self.window.append(result.total_reward)
        self.average_reward = sum(self.window) / len(self.window)
        if self.average_reward > self.best_average_reward:
            self.best_average_reward = self.average_reward
        return self.average_reward

    def snapshot(self, q_states: int = 0) -> TrainingProgress:
        return TrainingProgress(
            state=self.state,
            outcome=self.outcome,
            episode=self.episode,
            epsilon=self.epsilon,
            alpha=self.alpha,
            last_reward=self.last_reward,
            max_reward=self.max_reward,
            average_reward=self.average_reward,
            best_average_reward=self.best_average_reward,
            window_fill=len(self.window),
            q_states=q_states,
        )


class TrainingHandle:
    """Cancellation token plus single-shot completion signal for a background session."""

    def __init__(
        self,
        session: TrainingSession,
        table: QTable,
        on_complete: Callable[[TrainingProgress], Any] | None = None,
    ):
        self._session = session
        self.table = table
        self._on_complete = on_complete
        self._complete_lock = threading.Lock()
        self._completed = False
        self._thread: threading.Thread | None = None
        self.done = threading.Event()
        self.error: BaseException | None = None
        self.final_progress: TrainingProgress | None = None

    def progress(self) -> TrainingProgress:
        return self._session.snapshot(len(self.table))

    def cancel(self) -> None:
        self._session.cancel_event.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self.done.wait(timeout)

    def result(self, timeout: float | None = None) -> TrainingProgress:
        if not self.done.wait(timeout):
            raise TimeoutError("Training did not finish in time")
        if self.error is not None:
            raise self.error
        if self.final_progress is None:
            raise RuntimeError("Training finished without a final progress snapshot")
        return self.final_progress

    def _complete(self, progress: TrainingProgress) -> None:
        with self._complete_lock:
            if self._completed:
                return
            self._completed = True
        self.final_progress = progress
        try:
            if self._on_complete is not None:
                self._on_complete(progress)
        finally:
            self.done.set()


class QLearningTrainer:
    """Owns the Q-table and runs one training session at a time."""

    def __init__(self, config: TrainingConfig | None = None):
        self.config = config or TrainingConfig()
        self.config.validate()
        self.table: QTable | None = None
        self.session = TrainingSession(self.config.window_size)
        self._start_lock = threading.Lock()
        self._active = False
        self._handle: TrainingHandle | None = None
        self._episode_bar: tqdm | None = None
        self._rng = np.random.default_rng(self.config.seed)
        self._puzzle: Puzzle | None = None
        self._goal_state: State | None = None
        self._goal_keys: frozenset[tuple[int, ...]] = frozenset()
        self._goal_list: list[tuple[int, ...]] = []
        self._start_slots: list[int] = []

    # ------------------------------------------------------------------ public

    @property
    def is_training(self) -> bool:
        return self._active

    def progress(self) -> TrainingProgress:
        return self.session.snapshot(0 if self.table is None else len(self.table))

    def cancel(self) -> None:
        self.session.cancel_event.set()

    def start(
        self,
        env: CubeEnvironment,
        on_complete: Callable[[TrainingProgress], Any] | None = None,
    ) -> TrainingHandle:
        """Begin training on a background thread and return its handle immediately.

        While a session is active this is a no-op: TrainingAlreadyActive is issued
        and the running session's handle is returned.
        """
        with self._start_lock:
            if self._active:
                self._warn_already_active()
                if self._handle is None:
                    raise RuntimeError("Training is active but has no handle")
                return self._handle
            self._prepare(env)
            handle = TrainingHandle(self.session, self.table, on_complete)
            thread = threading.Thread(target=self._worker, args=(handle,), name="q-learning-trainer", daemon=True)
            handle._thread = thread
            self._handle = handle
            self._active = True
        thread.start()
        return handle

    def run(
        self,
        env: CubeEnvironment,
        progress: bool = True,
        on_episode: Callable[[EpisodeResult, TrainingSession], Any] | None = None,
    ) -> TrainingProgress:
        """Train in the calling thread until convergence, cancellation or the episode budget."""
        with self._start_lock:
            if self._active:
                self._warn_already_active()
                return self.progress()
            self._prepare(env)
            self._active = True

        outcome: str | None = None
        try:
            if progress:
                self._episode_bar = tqdm(
                    total=self.config.max_episodes,
                    desc="Q-learning episodes",
                    unit="ep",
                    mininterval=1.0,
                    maxinterval=5.0,
                )
            outcome = self._train_loop(on_episode)
        except KeyboardInterrupt:
            outcome = CANCELLED
        finally:
            final = self._finish_session(outcome)
            if self._episode_bar is not None:
                self._episode_bar.close()
                self._episode_bar = None
        return final

    def planner(self, env: CubeEnvironment) -> QPlanner:
        table = self.table if self.table is not None else QTable(len(env.moves), self.config.initial_q)
        goals = self._goal_keys if self._puzzle is env.puzzle and self._goal_keys else env.goal_keys()
        return QPlanner(table, env.puzzle, goals)

    def solve(
        self,
        env: CubeEnvironment,
        from_key: tuple[int, ...] | None = None,
        max_depth: int | None = None,
    ) -> list[Move]:
        """Greedy plan from ``from_key`` (default: the environment's current key)."""
        key = env.current_state_key() if from_key is None else from_key
        depth = self.config.max_steps if max_depth is None else max_depth
        return self.planner(env).solve_key(key, depth)

    # --------------------------------------------------------------- internals

    def _log(self, message: str) -> None:
        ts = datetime.now().strftime("%H:%M:%S")
        text = f"[{ts}] {message}"
        if self._episode_bar is not None:
            self._episode_bar.write(text)
        else:
            print(text, flush=True)

    def _warn_already_active(self) -> None:
        self._log(f"training_already_active episode={self.session.episode}")
        warnings.warn("Training is already running; start request ignored", TrainingAlreadyActive, stacklevel=3)

    def _prepare(self, env: CubeEnvironment) -> None:
        cfg = self.config
        cfg.validate()
        puzzle = env.puzzle
        goal_keys = env.goal_keys()
        start_slots: list[int] = []
        if puzzle.start_mode == START_UNIFORM:
            goal_slot = puzzle.encoder.encode(env.goal_state())[0]
            goal_slots = {key[0] for key in goal_keys}
            start_slots = sorted(puzzle.reachable_slots(goal_slot) - goal_slots)
            if not start_slots:
                raise ValueError(f"No other slot can reach goal slot {goal_slot}; there is nothing to learn")

        self._puzzle = puzzle
        self._goal_state = env.goal_state()
        self._goal_keys = goal_keys
        self._goal_list = sorted(goal_keys)
        self._start_slots = start_slots
        self.table = QTable(len(puzzle.moves), cfg.initial_q)
        self.session = TrainingSession(cfg.window_size)
        self.session.state = TRAINING
        self._rng = np.random.default_rng(cfg.seed)

        self._log(
            "trainer_init "
            f"puzzle={puzzle.name} encoder={puzzle.encoder.name} slots={puzzle.n_slots} "
            f"actions={len(puzzle.moves)} goals={len(goal_keys)} "
            f"alpha={cfg.alpha} gamma={cfg.gamma} epsilon={cfg.initial_epsilon}->{cfg.min_epsilon} "
            f"decay_rate={cfg.decay_rate} max_steps={cfg.max_steps} window_size={cfg.window_size} "
            f"target_reward={cfg.target_reward} max_episodes={cfg.max_episodes} seed={cfg.seed}"
        )

    def _worker(self, handle: TrainingHandle) -> None:
        outcome: str | None = None
        try:
            outcome = self._train_loop(None)
        except BaseException as exc:
            handle.error = exc
            outcome = FAILED
            raise
        finally:
            handle._complete(self._finish_session(outcome))

    def _finish_session(self, outcome: str | None) -> TrainingProgress:
        session = self.session
        session.outcome = outcome if outcome is not None else FAILED
        session.state = IDLE
        n_states, avg_q = self.table.stats() if self.table is not None else (0, 0.0)
        self._log(
            "training_done "
            f"outcome={session.outcome} episodes={session.episode} "
            f"avg_reward={session.average_reward:.2f} max_reward={session.max_reward:.2f} "
            f"best_avg_reward={session.best_average_reward:.2f} q_states={n_states} avg_q={avg_q:.4f}"
        )
        final = session.snapshot(n_states)
        with self._start_lock:
            self._active = False
        return final

    def _train_loop(self, on_episode: Callable[[EpisodeResult, TrainingSession], Any] | None) -> str:
        cfg = self.config
        session = self.session
        episode = 0

        while not session.cancel_event.is_set():
            if cfg.max_episodes is not None and episode >= cfg.max_episodes:
                return EXHAUSTED
            episode += 1
            result = self._run_episode(episode, epsilon_at(cfg, episode), alpha_at(cfg, episode))
            avg_reward = session.record(result)

            if on_episode is not None:
                on_episode(result, session)
            if self._episode_bar is not None:
                self._episode_bar.update(1)
            self._maybe_log_interval_stats(episode)

            if len(session.window) == cfg.window_size and avg_reward >= cfg.target_reward:
                self._log(f"converged episode={episode} avg_reward={avg_reward:.2f}")
                return CONVERGED

        self._log(f"training_cancelled episode={episode}")
        return CANCELLED

    def _maybe_log_interval_stats(self, episode: int) -> None:
        if self.config.log_interval <= 0 or episode % self.config.log_interval != 0:
            return
        s = self.session
        n_states, avg_q = self.table.stats()
        self._log(
            "episode_stats "
            f"episode={episode} reward={s.last_reward:.2f} avg_reward={s.average_reward:.2f} "
            f"max_reward={s.max_reward:.2f} epsilon={s.epsilon:.4f} alpha={s.alpha:.4f}"
        )
        self._log(f"q_stats episode={episode} states={n_states} avg_q={avg_q:.4f}")
        if self._episode_bar is not None:
            self._episode_bar.set_postfix(
                {"avg": f"{s.average_reward:.1f}", "eps": f"{s.epsilon:.3f}", "states": n_states}
            )

    def _potential(self, key: tuple[int, ...]) -> int:
        return goal_potential(self._puzzle.encoder, key, self._goal_list)

    def _sample_start(self) -> State:
        puzzle = self._puzzle
        for _ in range(MAX_START_DRAWS):
            if puzzle.start_mode == START_UNIFORM:
                slot = self._start_slots[int(self._rng.integers(len(self._start_slots)))]
                state = puzzle.state_with_marked_at(slot)
            else:
                actions = random_move_indices(puzzle, self.config.scramble_moves, self._rng)
                state = apply_moves(self._goal_state, [puzzle.moves[a] for a in actions])
            if puzzle.encoder.encode(state) not in self._goal_keys:
                return state
        raise RuntimeError(f"Could not draw a non-goal start state in {MAX_START_DRAWS} attempts")

    def _choose_action(self, key: tuple[int, ...], epsilon: float) -> int:
        row = self.table.row(key)
        if self._rng.random() < epsilon:
            return int(self._rng.integers(self.table.n_actions))
        return greedy_action(row)

    def _run_episode(self, episode: int, epsilon: float, alpha: float) -> EpisodeResult:
        cfg = self.config
        puzzle = self._puzzle
        encoder = puzzle.encoder
        cancel = self.session.cancel_event

        state = self._sample_start()
        key = encoder.encode(state)
        potential = self._potential(key)
        steps = 0
        total = 0.0
        solved = False

        while steps < cfg.max_steps and not cancel.is_set():
            action = self._choose_action(key, epsilon)
            next_state = step(state, puzzle.moves[action])
            next_key = encoder.encode(next_state)
            next_potential = self._potential(next_key)
            steps += 1
            solved = next_key in self._goal_keys
            reward = compute_step_reward(potential, next_potential, cfg.gamma, solved, steps)
            self.table.update(key, action, reward, next_key, alpha, cfg.gamma)
            total += reward
            state, key, potential = next_state, next_key, next_potential
            if solved:
                break

        if not solved:
            total = failed_episode_reward(cfg.max_steps)
        return EpisodeResult(
            episode=episode,
            steps=steps,
            solved=solved,
            total_reward=total,
            epsilon=epsilon,
            alpha=alpha,
            potential=potential,
        )


def start_training(
    env: CubeEnvironment,
    config: TrainingConfig | None = None,
    on_complete: Callable[[TrainingProgress], Any] | None = None,
) -> tuple[QLearningTrainer, TrainingHandle]:
    trainer = QLearningTrainer(config)
    return trainer, trainer.start(env, on_complete)


def solve(
    trainer: QLearningTrainer,
    env: CubeEnvironment,
    from_key: tuple[int, ...] | None = None,
    max_depth: int | None = None,
) -> list[Move]:
    return trainer.solve(env, from_key, max_depth)
