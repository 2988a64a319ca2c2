import re
import argparse
import matplotlib.pyplot as plt
import numpy as np
from pathlib import Path


def parse_log(log_path: Path):
    episodes = []
    avg_rewards = []

    pattern = re.compile(r"episode=(\d+).*avg_reward=(-?[0-9.]+)")

    with open(log_path, "r", encoding="utf-8") as f:
        for line in f:
            if "episode_stats" not in line:
                continue
            m = pattern.search(line)
            if m:
                episodes.append(int(m.group(1)))
                avg_rewards.append(float(m.group(2)))

    return np.array(episodes, dtype=np.int64), np.array(avg_rewards, dtype=np.float64)


def smooth_xy(x, y, window: int):
    if window <= 1:
        return x, y
    if len(y) < window:
        return x, y
    y_s = np.convolve(y, np.ones(window) / window, mode="valid")
    x_s = x[window - 1 :]
    return x_s, y_s


def main():
    parser = argparse.ArgumentParser(description="Compare windowed average reward curves from two training logs")
    parser.add_argument("--first-log", required=True, help="Path to the first cube-train log")
    parser.add_argument("--second-log", required=True, help="Path to the second cube-train log")
    parser.add_argument("--output", default="compare_avg_reward.png", help="Output image path")
    parser.add_argument("--smooth", type=int, default=0, help="Moving average window (0/1 = off)")
    parser.add_argument("--label-first", default="Run A", help="Legend label for the first curve")
    parser.add_argument("--label-second", default="Run B", help="Legend label for the second curve")
    parser.add_argument("--target", type=float, default=None, help="Draw the convergence target as a line")
    args = parser.parse_args()

    first_path = Path(args.first_log)
    second_path = Path(args.second_log)
    for path in (first_path, second_path):
        if not path.exists():
            raise FileNotFoundError(f"Log not found: {path}")

    x1, y1 = parse_log(first_path)
    x2, y2 = parse_log(second_path)

    if len(x1) == 0:
        raise RuntimeError(f"No episode_stats found in log: {first_path}")
    if len(x2) == 0:
        raise RuntimeError(f"No episode_stats found in log: {second_path}")

    x1, y1 = smooth_xy(x1, y1, args.smooth)
    x2, y2 = smooth_xy(x2, y2, args.smooth)

    plt.figure(figsize=(9, 5))
    plt.plot(x1, y1, linewidth=2, label=args.label_first)
    plt.plot(x2, y2, linewidth=2, label=args.label_second)
    if args.target is not None:
        plt.axhline(args.target, color="gray", linestyle="--", linewidth=1, label=f"Target {args.target:g}")

    plt.xlabel("Episode")
    plt.ylabel("Average reward (window)")
    plt.title("Average reward comparison")
    plt.grid(True)
    plt.legend()
    plt.tight_layout()

    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out, dpi=300)
    print(f"Saved: {out.resolve()}")


if __name__ == "__main__":
    main()
