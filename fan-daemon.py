#!/usr/bin/env python3
"""
Fan daemon for Asustor Flashstor boards using per-zone temperature curves.

Each zone (CPU, board, every NVMe drive) has its own temp→PWM curve.
Target PWM = max(curve(zone_temp) for all zones), then rate-limited against
the last applied PWM so the fan ramps instead of hunting.
Logs which zone triggered each change.

Fail-safe: no readable zone, or repeated PWM write failures -> fixed safe
PWM (255 by default). Too many write failures in a row -> exit 1 so systemd
can restart the daemon. Stopping leaves the fan at its last commanded PWM.

Run with --help for configuration options.

Monitor logs:
    journalctl -u asustor-fancontrol -f

Dependencies:
    asustor_it87 kernel module (https://github.com/hgtxrx/asustor-platform-driver)
"""

from __future__ import annotations

import argparse
import dataclasses
import enum
import logging
import pathlib
import re
import signal
import sys
import threading
import time
from collections.abc import Iterable, Mapping
from typing import TypeVar, cast

import sensors
import statslog

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)
log = logging.getLogger("asustor-fancontrol")

MIN_DUTY = 0
MAX_DUTY = 255

Breakpoint = tuple[int, int]  # (threshold_celsius, duty)


class ConfigError(ValueError):
    """Invalid curve or daemon configuration."""


class ActuatorError(RuntimeError):
    """PWM writes keep failing; the fan state can no longer be trusted."""


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class Curve:
    """Temperature-to-duty curve of one zone."""

    breakpoints: tuple[Breakpoint, ...]
    floor_duty: int = 0
    interpolate: bool = False

    def validate(self, name: str) -> None:
        """Raise ConfigError unless thresholds ascend and duty never drops."""
        if not self.breakpoints:
            raise ConfigError("%s: curve needs at least one point" % name)
        if not MIN_DUTY <= self.floor_duty <= MAX_DUTY:
            raise ConfigError(
                "%s: floor duty must be 0-255, got %d" % (name, self.floor_duty)
            )
        prev_temp: int | None = None
        prev_duty = self.floor_duty
        for temp, duty in self.breakpoints:
            if not MIN_DUTY <= duty <= MAX_DUTY:
                raise ConfigError("%s: duty must be 0-255, got %d" % (name, duty))
            if prev_temp is None and duty < self.floor_duty:
                raise ConfigError(
                    "%s: floor duty %d is above the first point's duty %d"
                    % (name, self.floor_duty, duty)
                )
            if prev_temp is not None and temp <= prev_temp:
                raise ConfigError(
                    "%s: temperatures must be strictly ascending (%d after %d)"
                    % (name, temp, prev_temp)
                )
            if duty < prev_duty:
                raise ConfigError(
                    "%s: duty drops from %d to %d at %dC"
                    % (name, prev_duty, duty, temp)
                )
            prev_temp, prev_duty = temp, duty

    def duty(self, temp: float) -> int:
        """Desired duty at temp.

        Below the first point the floor duty applies, above the last point
        the last duty (no extrapolation). In between: last point <= temp
        wins, or linear interpolation towards the next point.
        """
        points = self.breakpoints
        if temp < points[0][0]:
            return self.floor_duty
        idx = 0
        for i, (t, _) in enumerate(points):
            if temp >= t:
                idx = i
        t0, d0 = points[idx]
        if not self.interpolate or idx == len(points) - 1:
            return d0
        t1, d1 = points[idx + 1]
        return d0 + round((d1 - d0) * (temp - t0) / (t1 - t0))


# Flashstor (Celeron N5105, Tjmax 105°C). min_pwm=60 keeps the stock fan spinning.
DEFAULT_CURVES: dict[str, Curve] = {
    "cpu": Curve(
        breakpoints=((50, 60), (60, 100), (70, 160), (80, 255)),
        floor_duty=60,
        interpolate=True,
    ),
    "board": Curve(
        breakpoints=((40, 60), (50, 120), (60, 255)),
        floor_duty=60,
        interpolate=True,
    ),
    # NVMe drives throttle around 70-80°C
    "nvme": Curve(
        breakpoints=((35, 60), (45, 100), (55, 170), (65, 255)),
        floor_duty=60,
        interpolate=True,
    ),
}

T = TypeVar("T")

_ZONE_RE = re.compile(r"^[a-z][a-z0-9_]*(-\d+)?$")


def zone_kind(zone: str) -> str:
    """nvme-2 -> nvme. Names without an index are their own kind."""
    return re.sub(r"-\d+$", "", zone)


def _lookup(table: Mapping[str, T], zone: str) -> T | None:
    """Look up with precedence: zone > zone kind."""
    for k in (zone, zone_kind(zone)):
        if k in table:
            return table[k]
    return None


class Curves:
    """Zone curve lookup. A specific zone (nvme-2) wins over its kind (nvme)."""

    @dataclasses.dataclass(slots=True, kw_only=True)
    class Config:
        """User overrides on top of DEFAULT_CURVES. Empty breakpoints disable."""

        breakpoints: dict[str, tuple[Breakpoint, ...]] = dataclasses.field(
            default_factory=dict
        )
        floors: dict[str, int] = dataclasses.field(default_factory=dict)
        interpolate: dict[str, bool] = dataclasses.field(default_factory=dict)

        def setup(self, defaults: Mapping[str, Curve] | None = None) -> Curves:
            return Curves(self, DEFAULT_CURVES if defaults is None else defaults)

        @staticmethod
        def parse_curve(spec: str) -> tuple[str, tuple[Breakpoint, ...]]:
            """Parse 'nvme=35:60,65:255' into (name, points). 'nvme=' -> ()."""
            name, value = _split_assignment(spec)
            points: list[Breakpoint] = []
            for part in value.split(","):
                part = part.strip()
                if not part:
                    continue
                pieces = part.split(":")
                if len(pieces) != 2:
                    raise ConfigError(
                        "Invalid point format: %s (expected temp:duty)" % part
                    )
                try:
                    temp, duty = int(pieces[0]), int(pieces[1])
                except ValueError:
                    raise ConfigError(
                        "Invalid point: %s (expected integers)" % part
                    ) from None
                if not MIN_DUTY <= duty <= MAX_DUTY:
                    raise ConfigError("Duty must be 0-255, got %d" % duty)
                points.append((temp, duty))
            return name, tuple(points)

        @staticmethod
        def parse_floor(spec: str) -> tuple[str, int]:
            """Parse 'cpu=60' into (name, floor duty)."""
            name, value = _split_assignment(spec)
            try:
                duty = int(value)
            except ValueError:
                raise ConfigError("Invalid floor duty: %s" % value) from None
            if not MIN_DUTY <= duty <= MAX_DUTY:
                raise ConfigError("Duty must be 0-255, got %d" % duty)
            return name, duty

    config: Config
    defaults: dict[str, Curve]

    def __init__(self, config: Config, defaults: Mapping[str, Curve]) -> None:
        self.config = config
        self.defaults = dict(defaults)

    def get(self, zone: str) -> Curve | None:
        """Curve for zone with overrides applied; None if disabled or unknown."""
        cfg = self.config
        points = _lookup(cfg.breakpoints, zone)
        if points == ():
            return None
        base = _lookup(self.defaults, zone)
        if base is None:
            if points is None:
                return None
            base = Curve(breakpoints=points)
        floor = _lookup(cfg.floors, zone)
        interpolate = _lookup(cfg.interpolate, zone)
        return dataclasses.replace(
            base,
            breakpoints=base.breakpoints if points is None else points,
            floor_duty=base.floor_duty if floor is None else floor,
            interpolate=base.interpolate if interpolate is None else interpolate,
        )

    def for_zones(self, zones: Iterable[str]) -> dict[str, Curve]:
        """Resolve and validate the curve of every zone, skipping disabled ones."""
        curves: dict[str, Curve] = {}
        for zone in zones:
            curve = self.get(zone)
            if curve is None:
                if _lookup(self.config.breakpoints, zone) == ():
                    log.info("%s: disabled", zone)
                    continue
                raise ConfigError(
                    "%s: no curve configured (use --curve %s=TEMP:DUTY,...)"
                    % (zone, zone)
                )
            curve.validate(zone)
            curves[zone] = curve
        if not curves:
            raise ConfigError("No temperature zones to control")
        return curves


def _split_assignment(spec: str) -> tuple[str, str]:
    if "=" not in spec:
        raise ConfigError("Invalid spec (missing '='): %s" % spec)
    name, value = spec.split("=", 1)
    return _check_zone(name), value.strip()


def _check_zone(name: str) -> str:
    name = name.strip().lower()
    if not _ZONE_RE.match(name):
        raise ConfigError("Invalid zone name: %s" % name)
    return name


def combine(desired: Mapping[str, int]) -> int | None:
    """Most demanding zone wins. None if no zone produced a duty."""
    if not desired:
        return None
    return max(desired.values())


def damp(
    last: int,
    target: int,
    max_step_up: int,
    max_step_down: int,
    deadband: int = 0,
) -> int:
    """Move from last towards target by at most max_step_up / max_step_down.

    Changes smaller than deadband are ignored, except towards 0 or 255.
    """
    delta = target - last
    if delta == 0:
        return last
    if abs(delta) < deadband and target not in (MIN_DUTY, MAX_DUTY):
        return last
    if delta > 0:
        duty = last + min(delta, max_step_up)
    else:
        duty = last - min(-delta, max_step_down)
    return max(MIN_DUTY, min(MAX_DUTY, duty))


class State(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    FAIL_SAFE = "fail-safe"
    STOPPING = "stopping"


class FanDaemon:
    """Main fan control daemon."""

    @dataclasses.dataclass(slots=True, kw_only=True)
    class Config:
        """Control loop configuration."""

        interval_seconds: float = 10.0
        max_step_up: int = 32
        max_step_down: int = 8
        deadband: int = 0
        fail_safe_duty: int = MAX_DUTY
        startup_duty: int = 60  # used when the current PWM cannot be read
        stale_ticks: int = 2  # ticks a last-known temperature stands in
        fail_safe_after_write_failures: int = 3
        fatal_after_write_failures: int = 10

        def validate(self) -> None:
            if self.interval_seconds <= 0:
                raise ConfigError("Interval must be > 0")
            if self.max_step_up < 1 or self.max_step_down < 1:
                raise ConfigError("Max steps must be >= 1")
            if self.deadband < 0:
                raise ConfigError("Deadband must be >= 0")
            for name, duty in (
                ("fail-safe", self.fail_safe_duty),
                ("startup", self.startup_duty),
            ):
                if not MIN_DUTY <= duty <= MAX_DUTY:
                    raise ConfigError("%s duty must be 0-255, got %d" % (name, duty))
            if self.stale_ticks < 0:
                raise ConfigError("Stale ticks must be >= 0")
            if not (
                1
                <= self.fail_safe_after_write_failures
                <= self.fatal_after_write_failures
            ):
                raise ConfigError(
                    "Need 1 <= fail-safe write failures <= fatal write failures"
                )

        def setup(
            self,
            port: sensors.Port,
            curves: Curves,
            stats: statslog.CsvStatsLog | None = None,
        ) -> FanDaemon:
            self.validate()
            return FanDaemon(self, port, curves.for_zones(port.get_zones()), stats)

    config: Config
    port: sensors.Port
    curves: dict[str, Curve]
    stats: statslog.CsvStatsLog | None
    state: State
    duty: int  # last applied duty
    last_temps: dict[str, int]
    missed_reads: dict[str, int]
    write_failures: int

    def __init__(
        self,
        config: Config,
        port: sensors.Port,
        curves: dict[str, Curve],
        stats: statslog.CsvStatsLog | None = None,
    ) -> None:
        self.config = config
        self.port = port
        self.curves = curves
        self.stats = stats
        self.state = State.STARTING
        self.last_temps = {}
        self.missed_reads = {}
        self.write_failures = 0
        self._stop = threading.Event()
        current = port.read_duty()
        if current is None:
            log.warning("Cannot read current PWM, assuming %d", config.startup_duty)
            current = config.startup_duty
        self.duty = current

    def _read_temps(self) -> tuple[dict[str, int], set[str]]:
        """Read all zones. Returns (usable temps, zones read this tick).

        A failed zone falls back to its last known temperature for up to
        stale_ticks ticks, after that it is left out.
        """
        cfg = self.config
        temps: dict[str, int] = {}
        fresh: set[str] = set()
        for zone in self.curves:
            temp = self.port.read_zone_temp(zone)
            if temp is not None:
                if self.missed_reads.get(zone):
                    log.info("%s readable again (%dC)", zone, temp)
                self.missed_reads[zone] = 0
                self.last_temps[zone] = temp
                temps[zone] = temp
                fresh.add(zone)
                continue
            missed = self.missed_reads.get(zone, 0) + 1
            self.missed_reads[zone] = missed
            last = self.last_temps.get(zone)
            if last is not None and missed <= cfg.stale_ticks:
                temps[zone] = last
                if missed == 1:
                    log.warning("Failed to read %s, using last %dC", zone, last)
            elif missed == 1 or missed == cfg.stale_ticks + 1:
                log.warning("Failed to read %s, ignoring it", zone)
        return temps, fresh

    def _set_state(self, state: State, reason: str = "") -> None:
        if state is self.state:
            return
        level = {
            State.FAIL_SAFE: logging.ERROR,
            State.DEGRADED: logging.WARNING,
        }.get(state, logging.INFO)
        log.log(
            level,
            "State %s -> %s%s",
            self.state.value,
            state.value,
            " (%s)" % reason if reason else "",
        )
        self.state = state

    def _write(self, duty: int) -> bool:
        """Write duty. Raises ActuatorError after too many failures in a row."""
        cfg = self.config
        if self.port.write_duty(duty):
            self.write_failures = 0
            self.duty = duty
            return True
        self.write_failures += 1
        log.error(
            "Failed to write PWM %d (%d in a row)", duty, self.write_failures
        )
        if self.write_failures >= cfg.fatal_after_write_failures:
            raise ActuatorError(
                "PWM write failed %d times in a row" % self.write_failures
            )
        return False

    def _fail_safe(self, reason: str) -> None:
        self._set_state(State.FAIL_SAFE, reason)
        _ = self._write(self.config.fail_safe_duty)

    def control_loop(self) -> None:
        """Main control loop iteration."""
        cfg = self.config
        temps, fresh = self._read_temps()
        desired = {zone: self.curves[zone].duty(t) for zone, t in temps.items()}
        target = combine(desired)

        if target is None:
            self._fail_safe("no readable temperature zone")
        elif self.write_failures >= cfg.fail_safe_after_write_failures:
            self._fail_safe("%d PWM write failures in a row" % self.write_failures)
        else:
            prev = self.duty
            duty = damp(
                prev, target, cfg.max_step_up, cfg.max_step_down, cfg.deadband
            )
            if self._write(duty):
                if len(fresh) == len(self.curves):
                    self._set_state(State.RUNNING)
                else:
                    missing = sorted(set(self.curves) - fresh)
                    self._set_state(
                        State.DEGRADED, "unreadable: %s" % ", ".join(missing)
                    )
                if duty != prev:
                    trigger = max(desired, key=lambda z: desired[z])
                    log.info(
                        "%s=%dC -> target %d, pwm %d->%d [%s]",
                        trigger,
                        temps[trigger],
                        target,
                        prev,
                        duty,
                        " ".join(
                            "%s=%s" % (z, temps[z] if z in fresh else "-")
                            for z in self.curves
                        ),
                    )
            elif self.write_failures >= cfg.fail_safe_after_write_failures:
                self._fail_safe(
                    "%d PWM write failures in a row" % self.write_failures
                )

        if self.stats is not None:
            _ = self.stats.submit(
                statslog.StatsRecord(
                    timestamp=time.time(),
                    pwm=self.duty,
                    fan_rpm=self.port.read_rpm(),
                    temps_celsius={
                        z: temps[z] if z in fresh else None for z in self.curves
                    },
                )
            )

    def stop(
        self,
        signum: int | None = None,
        _frame: object = None,
    ) -> None:
        """Stop after the current tick. The fan keeps its last PWM."""
        if signum is not None:
            log.info("Received signal %d", signum)
        self._stop.set()

    def run(self) -> None:
        """Tick until stop() is called. Raises ActuatorError on fatal failure."""
        cfg = self.config
        if not self.port.initialize():
            raise ActuatorError("Cannot put the PWM channel into manual mode")
        log.info(
            "Starting: zones=%s interval=%gs pwm=%d",
            list(self.curves),
            cfg.interval_seconds,
            self.duty,
        )

        # Fixed-rate schedule against the monotonic clock, no drift.
        next_tick = time.monotonic()
        while not self._stop.is_set():
            try:
                self.control_loop()
            except ActuatorError:
                raise
            except Exception:
                log.exception("Control loop error")
                self._fail_safe("control loop error")

            next_tick += cfg.interval_seconds
            now = time.monotonic()
            if next_tick < now:
                log.warning("Tick overran by %.1fs", now - next_tick)
                next_tick = now
            _ = self._stop.wait(next_tick - now)

        self._set_state(State.STOPPING)
        log.info("Stopped, leaving fan at PWM %d", self.duty)


@dataclasses.dataclass(slots=True, kw_only=True)
class Config:
    """Daemon configuration."""

    curves: Curves.Config = dataclasses.field(default_factory=Curves.Config)
    daemon: FanDaemon.Config = dataclasses.field(default_factory=FanDaemon.Config)
    hwmon: sensors.Hwmon.Config = dataclasses.field(
        default_factory=sensors.Hwmon.Config
    )
    stats_file: pathlib.Path | None = None
    verbose: bool = False

    @classmethod
    def from_args(cls, argv: list[str] | None = None) -> Config:
        """Parse command-line arguments, discover hwmon devices, return Config."""
        p = argparse.ArgumentParser(
            description="Fan daemon for Asustor Flashstor (it87 PWM)",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Zones: cpu (coretemp), board (acpitz), nvme-1..N (one per NVMe drive).

Curve format: ZONE=TEMP:DUTY,TEMP:DUTY,...   (duty 0-255, temps ascending)
  Below the first point the floor duty applies; above the last point the
  last duty. Between points the duty steps, or is interpolated linearly.

  Examples:
    --curve nvme=35:60,50:150,65:255    All NVMe drives
    --curve nvme-2=40:60,70:255         Only the second NVMe drive
    --curve board=                      Ignore the board sensor
    --floor cpu=40                      Floor duty below the first point
    --step cpu                          Step function instead of interpolation

  Precedence (most specific wins): nvme-2 > nvme > default
""",
        )
        dd = FanDaemon.Config()
        _ = p.add_argument(
            "--curve",
            action="append",
            metavar="SPEC",
            help="Curve spec. Repeatable.",
        )
        _ = p.add_argument(
            "--floor",
            action="append",
            metavar="ZONE=DUTY",
            help="Floor duty. Repeatable.",
        )
        _ = p.add_argument(
            "--interpolate",
            action="append",
            metavar="ZONE",
            help="Interpolate between points. Repeatable.",
        )
        _ = p.add_argument(
            "--step",
            action="append",
            metavar="ZONE",
            help="Step between points. Repeatable.",
        )
        _ = p.add_argument(
            "--interval",
            type=float,
            default=dd.interval_seconds,
            help="Poll interval (seconds).",
        )
        _ = p.add_argument(
            "--max-step-up",
            type=int,
            default=dd.max_step_up,
            help="Max PWM increase per tick.",
        )
        _ = p.add_argument(
            "--max-step-down",
            type=int,
            default=dd.max_step_down,
            help="Max PWM decrease per tick.",
        )
        _ = p.add_argument(
            "--deadband",
            type=int,
            default=dd.deadband,
            help="Ignore PWM changes smaller than this.",
        )
        _ = p.add_argument(
            "--fail-safe-duty",
            type=int,
            default=dd.fail_safe_duty,
            help="PWM when sensors or writes fail.",
        )
        _ = p.add_argument(
            "--startup-duty",
            type=int,
            default=dd.startup_duty,
            help="Assumed PWM if the current one is unreadable.",
        )
        _ = p.add_argument(
            "--stale-ticks",
            type=int,
            default=dd.stale_ticks,
            help="Ticks a failed zone keeps its last temperature.",
        )
        _ = p.add_argument(
            "--fail-safe-after",
            type=int,
            default=dd.fail_safe_after_write_failures,
            help="PWM write failures in a row before fail-safe.",
        )
        _ = p.add_argument(
            "--fatal-after",
            type=int,
            default=dd.fatal_after_write_failures,
            help="PWM write failures in a row before exiting.",
        )
        _ = p.add_argument(
            "--hwmon-root",
            type=pathlib.Path,
            default=sensors.HWMON_ROOT,
            help="hwmon class directory.",
        )
        _ = p.add_argument(
            "--pwm-path",
            type=str,
            default=None,
            help="PWM file (default: auto-detect it87 pwm1).",
        )
        _ = p.add_argument(
            "--fan-path",
            type=str,
            default=None,
            help="Fan RPM file (default: auto-detect it87 fan1_input).",
        )
        _ = p.add_argument(
            "--zone-path",
            action="append",
            metavar="ZONE=PATH[,PATH]",
            help="Temperature files of a zone. Repeatable.",
        )
        _ = p.add_argument(
            "--timeout",
            type=float,
            default=1.0,
            help="sysfs read/write timeout (seconds).",
        )
        _ = p.add_argument(
            "--stats-file",
            type=pathlib.Path,
            default=None,
            help="Append per-tick CSV stats here.",
        )
        _ = p.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            help="Debug logging.",
        )
        args = p.parse_args(argv)

        curves = Curves.Config()
        try:
            for spec in cast(list[str], args.curve or []):
                name, points = Curves.Config.parse_curve(spec)
                curves.breakpoints[name] = points
            for spec in cast(list[str], args.floor or []):
                name, duty = Curves.Config.parse_floor(spec)
                curves.floors[name] = duty
            for name in cast(list[str], args.interpolate or []):
                curves.interpolate[_check_zone(name)] = True
            for name in cast(list[str], args.step or []):
                curves.interpolate[_check_zone(name)] = False
        except ConfigError as e:
            p.error(str(e))

        daemon = FanDaemon.Config(
            interval_seconds=cast(float, args.interval),
            max_step_up=cast(int, args.max_step_up),
            max_step_down=cast(int, args.max_step_down),
            deadband=cast(int, args.deadband),
            fail_safe_duty=cast(int, args.fail_safe_duty),
            startup_duty=cast(int, args.startup_duty),
            stale_ticks=cast(int, args.stale_ticks),
            fail_safe_after_write_failures=cast(int, args.fail_safe_after),
            fatal_after_write_failures=cast(int, args.fatal_after),
        )
        try:
            daemon.validate()
        except ConfigError as e:
            p.error(str(e))

        hwmon = sensors.Hwmon.Config.discover(cast(pathlib.Path, args.hwmon_root))
        hwmon.timeout_seconds = cast(float, args.timeout)
        if args.pwm_path:
            hwmon.pwm_path = cast(str, args.pwm_path)
            hwmon.enable_path = None
            enable = pathlib.Path(hwmon.pwm_path + "_enable")
            if enable.exists():
                hwmon.enable_path = str(enable)
        if args.fan_path:
            hwmon.fan_path = cast(str, args.fan_path)
        for spec in cast(list[str], args.zone_path or []):
            try:
                name, value = _split_assignment(spec)
            except ConfigError as e:
                p.error(str(e))
            paths = tuple(x.strip() for x in value.split(",") if x.strip())
            if not paths:
                p.error("No paths given for zone %s" % name)
            hwmon.zone_paths[name] = paths

        # Without a PWM device main() exits with the kernel module hint.
        if hwmon.pwm_path is not None:
            try:
                _ = curves.setup().for_zones(hwmon.zone_paths)
            except ConfigError as e:
                p.error(str(e))

        return cls(
            curves=curves,
            daemon=daemon,
            hwmon=hwmon,
            stats_file=cast(pathlib.Path | None, args.stats_file),
            verbose=cast(bool, args.verbose),
        )


def main(argv: list[str] | None = None) -> int:
    config = Config.from_args(argv)
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if config.hwmon.pwm_path is None:
        log.error(
            "No it87 PWM device found. Is the asustor_it87 kernel module loaded?"
            " (lsmod | grep asustor_it87)"
        )
        return 1

    port = config.hwmon.setup()
    daemon = config.daemon.setup(port, config.curves.setup())
    if config.stats_file is not None:
        daemon.stats = statslog.CsvStatsLog(config.stats_file, daemon.curves)
        daemon.stats.start()

    _ = signal.signal(signal.SIGTERM, daemon.stop)
    _ = signal.signal(signal.SIGINT, daemon.stop)
    try:
        daemon.run()
    except ActuatorError as e:
        log.critical("%s; exiting, fan state unknown", e)
        return 1
    finally:
        if daemon.stats is not None:
            daemon.stats.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
