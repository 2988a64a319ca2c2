"""Step reward with potential-based shaping."""

from __future__ import annotations

STEP_REWARD = -1.0
GOAL_BONUS = 100.0


def shaping_term(potential_before: float, potential_after: float, gamma: float) -> float:
    return gamma * float(potential_after) - float(potential_before)


def compute_step_reward(
    potential_before: float,
    potential_after: float,
    gamma: float,
    reached_goal: bool,
    steps_taken: int,
) -> float:
    """-1 per move, plus gamma * phi(s') - phi(s), plus (100 - steps) on entering the goal.

    ``steps_taken`` counts the move being rewarded.
    """
    reward = STEP_REWARD + shaping_term(potential_before, potential_after, gamma)
    if reached_goal:
        reward += GOAL_BONUS - float(steps_taken)
    return float(reward)


def failed_episode_reward(max_steps: int) -> float:
    return -float(max_steps)
