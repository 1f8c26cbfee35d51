#!/usr/bin/env python3
# pyright: basic
"""
Summarize fan stats logs and calibration sweeps.

Usage:
    ./analyze-stats.py logs system-stats.csv                # statistics
    ./analyze-stats.py logs system-stats.csv --png out.png  # also plot
    ./analyze-stats.py calibration fan-calibration.csv      # floor advice
"""

from __future__ import annotations

import argparse
import csv
import dataclasses
import math
import sys
from datetime import datetime
from pathlib import Path

import numpy as np

import statslog

RUNNING_RPM = 50  # calibration rows above this count as spinning
FLOOR_MARGIN = 5
VERY_STABLE_RPM = 100
STABLE_RPM = 300
HUNTING_PERCENT = 50
UNRESPONSIVE_PERCENT = 10


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return math.nan


def load_csv(path: Path) -> dict[str, np.ndarray]:
    """Load a stats CSV into column arrays.

    Returns:
        Dict with 'timestamps' (epoch seconds) and one float array per
        remaining column. Empty or malformed cells are NaN.
    """
    with path.open(newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None or "Timestamp" not in reader.fieldnames:
            raise ValueError(f"{path}: missing Timestamp header")
        columns = [c for c in reader.fieldnames if c != "Timestamp"]
        data: dict[str, list[float]] = {"timestamps": []}
        data.update((c, []) for c in columns)
        for row in reader:
            try:
                ts = datetime.strptime(
                    row["Timestamp"], statslog.TIMESTAMP_FORMAT
                ).timestamp()
            except (TypeError, ValueError):
                continue
            data["timestamps"].append(ts)
            for c in columns:
                data[c].append(_to_float(row.get(c) or ""))
    return {k: np.array(v, dtype=np.float64) for k, v in data.items()}


def column_stats(values: np.ndarray) -> tuple[float, float, float] | None:
    """(min, max, mean) ignoring NaN; None when nothing was recorded."""
    finite = values[~np.isnan(values)]
    if finite.size == 0:
        return None
    return float(finite.min()), float(finite.max()), float(finite.mean())


def correlation(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation over rows where both are present; 0 if flat."""
    mask = ~(np.isnan(x) | np.isnan(y))
    x, y = x[mask], y[mask]
    if x.size < 2 or x.std() == 0 or y.std() == 0:
        return 0.0
    return float(np.corrcoef(x, y)[0, 1])


def stability(rpm: np.ndarray) -> tuple[float, float, str]:
    """Mean and standard deviation of the fan speed with a verdict."""
    finite = rpm[~np.isnan(rpm)]
    if finite.size == 0:
        return math.nan, math.nan, "no data"
    std = float(finite.std())
    if std < VERY_STABLE_RPM:
        verdict = "very stable"
    elif std < STABLE_RPM:
        verdict = "moderately stable"
    else:
        verdict = "high variance (fan hunting?)"
    return float(finite.mean()), std, verdict


def change_percent(rpm: np.ndarray) -> tuple[int, int, float]:
    """Count consecutive samples whose RPM differs.

    Returns:
        (changes, pairs, percent). percent is 0 with fewer than two samples.
    """
    finite = rpm[~np.isnan(rpm)]
    pairs = finite.size - 1
    if pairs <= 0:
        return 0, 0, 0.0
    changes = int(np.count_nonzero(np.diff(finite)))
    return changes, pairs, 100.0 * changes / pairs


def change_verdict(percent: float) -> str:
    if percent > HUNTING_PERCENT:
        return (
            "WARNING: frequent fan speed changes (possible hunting);"
            " consider raising --deadband or lowering --max-step-down"
        )
    if percent < UNRESPONSIVE_PERCENT:
        return (
            "INFO: few fan speed changes (fan may be unresponsive);"
            " consider lowering curve temperatures"
        )
    return "Normal fan responsiveness"


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class CalibrationSummary:
    min_running_pwm: int
    recommended_floor: int
    max_rpm: int
    half_speed_pwm: int | None


def load_calibration(path: Path) -> list[tuple[int, int]]:
    """Read (pwm, rpm) pairs from a calibrate-fan.py CSV."""
    points: list[tuple[int, int]] = []
    with path.open(newline="") as f:
        for row in csv.DictReader(f):
            try:
                points.append((int(row["PWM"]), int(row["RPM"])))
            except (KeyError, TypeError, ValueError):
                continue
    return points


def analyze_calibration(
    points: list[tuple[int, int]],
) -> CalibrationSummary | None:
    """Derive floor advice from a sweep; None if the fan never spun."""
    min_running = next((pwm for pwm, rpm in points if rpm > RUNNING_RPM), None)
    if min_running is None:
        return None
    max_rpm = max(rpm for _, rpm in points)
    half = next(
        (pwm for pwm, rpm in points if max_rpm / 2 <= rpm <= max_rpm * 0.6),
        None,
    )
    return CalibrationSummary(
        min_running_pwm=min_running,
        recommended_floor=min(min_running + FLOOR_MARGIN, 255),
        max_rpm=max_rpm,
        half_speed_pwm=half,
    )


def _label(column: str) -> str:
    return column.removesuffix("TempC")


def plot_stats(data: dict[str, np.ndarray], path: Path) -> None:
    """Plot temperatures (left axis) and PWM duty (right axis) over time."""
    try:
        import matplotlib.dates as mdates
        import matplotlib.pyplot as plt
    except ImportError:
        print("matplotlib not installed, skipping plot", file=sys.stderr)
        return

    timestamps = data.get("timestamps")
    if timestamps is None or len(timestamps) == 0:
        print("No samples to plot", file=sys.stderr)
        return

    dates = [datetime.fromtimestamp(t) for t in timestamps]
    temps = {k: v for k, v in data.items() if k.endswith("TempC")}
    marker_every = max(1, len(dates) // 200)

    fig, ax1 = plt.subplots(figsize=(14, 7))
    cmap = plt.get_cmap("tab10")
    for i, (name, values) in enumerate(temps.items()):
        ax1.plot(
            dates,  # pyright: ignore[reportArgumentType]
            values,
            label=_label(name),
            color=cmap(i % 10),
            alpha=0.8,
            linewidth=0.8,
            marker=".",
            markersize=2,
            markevery=marker_every,
        )
    ax1.set_xlabel("Time")
    ax1.set_ylabel("Temperature (C)")
    ax1.set_ylim(0, 100)
    ax1.grid(True, alpha=0.3)

    ax2 = ax1.twinx()
    if "PWM" in data:
        ax2.plot(
            dates,  # pyright: ignore[reportArgumentType]
            data["PWM"],
            label="PWM",
            color="red",
            linestyle="--",
            linewidth=1,
        )
    ax2.set_ylabel("PWM duty (0-255)")
    ax2.set_ylim(0, 255)

    locator = mdates.AutoDateLocator()
    ax1.xaxis.set_major_locator(locator)
    ax1.xaxis.set_major_formatter(mdates.ConciseDateFormatter(locator))
    fig.autofmt_xdate()

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2, loc="upper left", fontsize=8)

    plt.title("Asustor fan control: temperatures and PWM")
    plt.tight_layout()
    path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(path, dpi=150)
    plt.close()
    print(f"Saved {path}")


def _fmt(value: float) -> str:
    return "-" if math.isnan(value) else f"{value:.1f}"


def report_logs(path: Path, png: Path | None = None) -> int:
    data = load_csv(path)
    samples = len(data["timestamps"])
    if samples == 0:
        print(f"No samples in {path}", file=sys.stderr)
        return 1
    start = datetime.fromtimestamp(data["timestamps"][0])
    end = datetime.fromtimestamp(data["timestamps"][-1])
    print(f"Log file: {path}")
    print(f"Samples: {samples} ({start} to {end})")
    print()

    print("=== Statistics ===")
    for column in (c for c in data if c != "timestamps"):
        stats = column_stats(data[column])
        if stats is None:
            print(f"  {_label(column):<12} no data")
            continue
        lo, hi, avg = stats
        print(f"  {_label(column):<12} Min: {lo:<6g} Max: {hi:<6g} Avg: {avg:.1f}")
    print()

    print("=== Correlation ===")
    if "PWM" in data and "CPUTempC" in data:
        corr = correlation(data["PWM"], data["CPUTempC"])
        print(f"  PWM vs CPU temperature: {corr:.2f}")
    print()

    if "FanRPM" in data:
        rpm = data["FanRPM"]
        mean, std, verdict = stability(rpm)
        print("=== Fan stability ===")
        print(f"  Average: {_fmt(mean)} RPM")
        print(f"  Std Dev: {_fmt(std)} RPM")
        print(f"  {verdict}")
        print()

        changes, pairs, percent = change_percent(rpm)
        print("=== Responsiveness ===")
        print(f"  Fan speed changes: {changes} of {pairs} ({percent:.0f}%)")
        if pairs:
            print(f"  {change_verdict(percent)}")

    if png is not None:
        plot_stats(data, png)
    return 0


def report_calibration(path: Path) -> int:
    points = load_calibration(path)
    print(f"Calibration file: {path}")
    for pwm, rpm in points:
        print(f"  PWM {pwm:>3} -> {rpm:>5} RPM")
    print()

    summary = analyze_calibration(points)
    if summary is None:
        print(
            "WARNING: the fan does not run at any PWM value. Check that the"
            " asustor_it87 module is loaded and the fan is connected.",
            file=sys.stderr,
        )
        return 1
    print(f"Minimum PWM (fan starts): {summary.min_running_pwm}")
    floor = summary.recommended_floor
    print(f"  Recommended floor duty: {floor}")
    print(
        "    ./fan-daemon.py"
        + "".join(f" --floor {z}={floor}" for z in ("cpu", "board", "nvme"))
    )
    print(f"Maximum RPM: {summary.max_rpm}")
    if summary.half_speed_pwm is not None:
        print(f"PWM for ~50% speed: {summary.half_speed_pwm}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)
    logs = sub.add_parser("logs", help="Summarize a system stats CSV.")
    _ = logs.add_argument("file", type=Path)
    _ = logs.add_argument(
        "--png",
        type=Path,
        default=None,
        help="Also plot temperatures and PWM to this png.",
    )
    cal = sub.add_parser("calibration", help="Summarize a calibration CSV.")
    _ = cal.add_argument("file", type=Path)
    args = parser.parse_args(argv)

    if not args.file.exists():
        print(f"File not found: {args.file}", file=sys.stderr)
        return 1
    try:
        if args.command == "logs":
            return report_logs(args.file, args.png)
        return report_calibration(args.file)
    except (OSError, ValueError) as e:
        print(f"Failed to read {args.file}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
