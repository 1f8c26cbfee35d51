#!/usr/bin/env python3
"""
Log PWM, fan RPM and all zone temperatures (every NVMe drive) to CSV.

Read-only observer: runs next to fan-daemon without touching the fan.
Analyze the result with analyze-stats.py.

Usage:
    sudo ./log-system-stats.py                 # every 10s until Ctrl+C
    sudo ./log-system-stats.py -i 5 -d 300     # every 5s for 5 minutes
    sudo ./log-system-stats.py -f stats.csv
"""

from __future__ import annotations

import argparse
import datetime
import logging
import os
import pathlib
import sys
import time
from collections.abc import Callable
from typing import cast

import sensors
import statslog

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)
log = logging.getLogger("asustor-fancontrol")

LOG_DIR = pathlib.Path("/var/log/asustor-fancontrol")
PROGRESS_EVERY = 6  # samples between progress lines


def sample(port: sensors.Port) -> statslog.StatsRecord:
    """Read PWM, RPM and every zone once."""
    return statslog.StatsRecord(
        timestamp=time.time(),
        pwm=port.read_duty(),
        fan_rpm=port.read_rpm(),
        temps_celsius={z: port.read_zone_temp(z) for z in port.get_zones()},
    )


def log_stats(
    port: sensors.Port,
    stats: statslog.CsvStatsLog,
    interval: float,
    duration: float = 0.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Sample every interval seconds for duration seconds (0 = forever).

    Returns the number of samples taken.
    """
    start = clock()
    count = 0
    try:
        while True:
            elapsed = clock() - start
            if duration > 0 and elapsed >= duration:
                break
            record = sample(port)
            _ = stats.submit(record)
            count += 1
            if count % PROGRESS_EVERY == 0:
                log.info(
                    "[%ds] %d samples | %s | fan %s RPM (PWM %s)",
                    elapsed,
                    count,
                    " ".join(
                        "%s=%s" % (z, "-" if t is None else t)
                        for z, t in record.temps_celsius.items()
                    ),
                    "-" if record.fan_rpm is None else record.fan_rpm,
                    "-" if record.pwm is None else record.pwm,
                )
            sleep(interval)
    except KeyboardInterrupt:
        log.info("Interrupted")
    return count


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    _ = parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=10.0,
        help="Log every N seconds (default: 10).",
    )
    _ = parser.add_argument(
        "-d",
        "--duration",
        type=float,
        default=0.0,
        help="Run for N seconds total (default: 0 = until Ctrl+C).",
    )
    _ = parser.add_argument(
        "-f",
        "--file",
        type=pathlib.Path,
        default=None,
        help=f"CSV path (default: {LOG_DIR}/system-stats-TIMESTAMP.csv).",
    )
    _ = parser.add_argument(
        "--hwmon-root",
        type=pathlib.Path,
        default=sensors.HWMON_ROOT,
        help="hwmon class directory.",
    )
    args = parser.parse_args(argv)
    if args.interval <= 0:
        parser.error("--interval must be > 0")

    if os.geteuid() != 0:
        log.error("This script must be run as root")
        return 1

    config = sensors.Hwmon.Config.discover(args.hwmon_root)
    if config.pwm_path is None:
        log.error(
            "Could not find the it87 PWM device. Is the asustor_it87 kernel"
            " module loaded? (lsmod | grep asustor_it87)"
        )
        return 1
    if "cpu" not in config.zone_paths or "board" not in config.zone_paths:
        log.error("Could not find coretemp/acpitz temperature sensors")
        return 1
    if not any(z.startswith("nvme-") for z in config.zone_paths):
        log.warning("No NVMe devices found")

    path = cast(pathlib.Path | None, args.file)
    if path is None:
        stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        path = LOG_DIR / f"system-stats-{stamp}.csv"

    port = config.setup()
    stats = statslog.CsvStatsLog(path, port.get_zones())
    stats.start()
    log.info(
        "Logging to %s every %gs, %s",
        path,
        args.interval,
        "for %gs" % args.duration if args.duration > 0 else "until Ctrl+C",
    )
    try:
        count = log_stats(port, stats, args.interval, args.duration)
    finally:
        stats.close()
    log.info("Logged %d samples to %s", count, path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
