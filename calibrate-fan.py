#!/usr/bin/env python3
"""
Measure fan RPM across the PWM range to find the real operating floor.

Steps the fan through fixed PWM values, waits for the RPM to settle at
each one and records the result to CSV. Stop fan-daemon first, the fan
is driven directly. The duty is restored to a safe value on exit.

Usage:
    sudo systemctl stop asustor-fancontrol
    sudo ./calibrate-fan.py                  # ~2.5 minutes
    sudo ./calibrate-fan.py -o cal.csv --settle 5
    ./analyze-stats.py calibration cal.csv
"""

from __future__ import annotations

import argparse
import csv
import dataclasses
import datetime
import logging
import os
import pathlib
import sys
import time
from collections.abc import Callable, Iterable
from typing import cast

import sensors

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)
log = logging.getLogger("asustor-fancontrol")

PWM_VALUES = (0, 20, 40, 60, 80, 100, 120, 140, 160, 180, 200, 220, 240, 255)
RUNNING_RPM = 50  # below this the fan is considered stopped
RESTORE_PWM = 60


class CalibrationError(RuntimeError):
    pass


@dataclasses.dataclass(frozen=True, slots=True)
class CalibrationPoint:
    pwm: int
    rpm: int

    @property
    def running(self) -> bool:
        return self.rpm >= RUNNING_RPM

    @property
    def notes(self) -> str:
        return "Running" if self.running else "Not running"


def sweep(
    port: sensors.Port,
    values: Iterable[int] = PWM_VALUES,
    settle_seconds: float = 10.0,
    sleep: Callable[[float], None] = time.sleep,
) -> list[CalibrationPoint]:
    """Write each PWM value, wait, and read the fan RPM back."""
    points: list[CalibrationPoint] = []
    for pwm in values:
        if not port.write_duty(pwm):
            raise CalibrationError(f"Failed to write PWM {pwm}")
        sleep(settle_seconds)
        rpm = port.read_rpm()
        if rpm is None:
            raise CalibrationError(f"Failed to read fan RPM at PWM {pwm}")
        point = CalibrationPoint(pwm=pwm, rpm=rpm)
        log.info("PWM %3d -> %5d RPM  %s", pwm, rpm, point.notes)
        points.append(point)
    return points


def write_csv(points: Iterable[CalibrationPoint], path: pathlib.Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["PWM", "RPM", "Notes"])
        for p in points:
            writer.writerow([p.pwm, p.rpm, p.notes])


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    _ = parser.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        default=None,
        help="CSV path (default: /tmp/fan-calibration-TIMESTAMP.csv).",
    )
    _ = parser.add_argument(
        "--settle",
        type=float,
        default=10.0,
        help="Seconds to wait at each PWM value (default: 10).",
    )
    _ = parser.add_argument(
        "--warmup",
        type=float,
        default=30.0,
        help="Seconds at the first value before the sweep (default: 30).",
    )
    _ = parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Do not ask for confirmation.",
    )
    _ = parser.add_argument(
        "--hwmon-root",
        type=pathlib.Path,
        default=sensors.HWMON_ROOT,
        help="hwmon class directory.",
    )
    args = parser.parse_args(argv)
    settle = cast(float, args.settle)
    warmup = cast(float, args.warmup)
    if settle < 0 or warmup < 0:
        parser.error("--settle and --warmup must be >= 0")

    if os.geteuid() != 0:
        log.error("This script must be run as root")
        return 1

    config = sensors.Hwmon.Config.discover(cast(pathlib.Path, args.hwmon_root))
    if config.pwm_path is None or config.fan_path is None:
        log.error(
            "Could not find the it87 PWM/fan device. Is the asustor_it87 kernel"
            " module loaded? (lsmod | grep asustor_it87)"
        )
        return 1

    output = cast(pathlib.Path | None, args.output)
    if output is None:
        stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        output = pathlib.Path(f"/tmp/fan-calibration-{stamp}.csv")

    log.warning("The fan will be stepped from PWM 0 to 255. Stop fan-daemon first.")
    if not args.yes:
        answer = input("Continue? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            log.info("Aborted")
            return 0

    port = config.setup()
    if not port.initialize():
        log.error("Cannot put the PWM channel into manual mode")
        return 1
    try:
        log.info("Warming up at PWM %d for %gs", PWM_VALUES[0], warmup)
        if not port.write_duty(PWM_VALUES[0]):
            raise CalibrationError(f"Failed to write PWM {PWM_VALUES[0]}")
        time.sleep(warmup)
        points = sweep(port, PWM_VALUES, settle)
    except CalibrationError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 1
    finally:
        if not port.write_duty(RESTORE_PWM):
            log.error("Failed to restore PWM %d", RESTORE_PWM)
        else:
            log.info("Restored PWM %d", RESTORE_PWM)

    write_csv(points, output)
    log.info("Results saved to %s", output)
    log.info("Analyze with: ./analyze-stats.py calibration %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
