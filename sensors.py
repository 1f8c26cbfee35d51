"""Hwmon sensor/actuator port for the Asustor it87 fan controller.

Temperatures come from hwmon ``temp*_input`` files (milli-degrees C), the fan
is driven through the it87 ``pwm1`` register (0-255) and its speed is read
from ``fan1_input``.

Every port implements the Port protocol; reads return None and writes return
False on failure, they never raise.
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import pathlib
import threading
from collections.abc import Callable
from typing import Protocol, TypeVar

log = logging.getLogger("asustor-fancontrol")

HWMON_ROOT = pathlib.Path("/sys/class/hwmon")

T = TypeVar("T")

# sysfs calls run on daemon threads, bounded by a timeout. Last thread per
# path; a path whose call is still stuck gets no new thread.
_in_flight: dict[str, threading.Thread] = {}
_in_flight_lock = threading.Lock()


class Port(Protocol):
    """Protocol for fan sensor/actuator access."""

    def initialize(self) -> bool: ...
    def get_zones(self) -> tuple[str, ...]: ...
    def read_zone_temp(self, zone: str) -> int | None: ...
    def read_duty(self) -> int | None: ...
    def read_rpm(self) -> int | None: ...
    def write_duty(self, duty: int) -> bool: ...


class Hwmon:
    """Port backed by hwmon sysfs files."""

    @dataclasses.dataclass(slots=True, kw_only=True)
    class Config:
        """Device paths. None means the file is not available."""

        pwm_path: str | None = None
        fan_path: str | None = None
        enable_path: str | None = None
        # zone -> temp*_input files; the zone reads as the hottest of them
        zone_paths: dict[str, tuple[str, ...]] = dataclasses.field(
            default_factory=dict
        )
        temp_min_valid_celsius: int = 0
        temp_max_valid_celsius: int = 120
        timeout_seconds: float = 1.0

        def setup(self) -> Hwmon:
            return Hwmon(self)

        @classmethod
        def discover(cls, root: pathlib.Path = HWMON_ROOT) -> Hwmon.Config:
            """Scan hwmon devices for the it87 PWM channel and temperature zones.

            coretemp -> cpu, acpitz -> board, nvme* -> nvme-1..n (in hwmon order).
            """
            config = cls()
            nvmes: list[pathlib.Path] = []
            for hwmon in sorted(root.glob("hwmon*"), key=_hwmon_index):
                name = _hwmon_name(hwmon)
                device = (hwmon / "device").resolve().name
                if name.startswith("it8") or "it87" in device:
                    if config.pwm_path is None and (hwmon / "pwm1").exists():
                        config.pwm_path = str(hwmon / "pwm1")
                        if (hwmon / "fan1_input").exists():
                            config.fan_path = str(hwmon / "fan1_input")
                        if (hwmon / "pwm1_enable").exists():
                            config.enable_path = str(hwmon / "pwm1_enable")
                elif name == "coretemp":
                    if temps := _temp_inputs(hwmon):
                        config.zone_paths.setdefault("cpu", temps)
                elif name == "acpitz":
                    if (hwmon / "temp1_input").exists():
                        config.zone_paths.setdefault(
                            "board", (str(hwmon / "temp1_input"),)
                        )
                elif name.startswith("nvme"):
                    nvmes.append(hwmon)
            for i, hwmon in enumerate(nvmes, start=1):
                if temps := _temp_inputs(hwmon):
                    config.zone_paths[f"nvme-{i}"] = temps
            if config.pwm_path:
                log.info("PWM: %s", config.pwm_path)
            for zone, paths in config.zone_paths.items():
                log.info("%s: %s", zone, ", ".join(paths))
            return config

    config: Config

    def __init__(self, config: Config) -> None:
        self.config = config

    def initialize(self) -> bool:
        """Switch the PWM channel to manual mode (pwm1_enable=1)."""
        cfg = self.config
        if cfg.pwm_path is None:
            log.error("No PWM device configured")
            return False
        if cfg.enable_path is None:
            return True
        if read_int(cfg.enable_path, cfg.timeout_seconds) == 1:
            return True
        if not write_int(cfg.enable_path, 1, cfg.timeout_seconds):
            log.error("Failed to set manual PWM mode via %s", cfg.enable_path)
            return False
        return True

    def get_zones(self) -> tuple[str, ...]:
        return tuple(self.config.zone_paths)

    def read_zone_temp(self, zone: str) -> int | None:
        """Hottest valid reading of the zone in whole degrees C."""
        temps: list[int] = []
        for path in self.config.zone_paths.get(zone, ()):
            millidegrees = read_int(path, self.config.timeout_seconds)
            if millidegrees is None:
                continue
            temp = self._valid_temp(millidegrees // 1000)
            if temp is not None:
                temps.append(temp)
        return max(temps) if temps else None

    def read_duty(self) -> int | None:
        cfg = self.config
        if cfg.pwm_path is None:
            return None
        duty = read_int(cfg.pwm_path, cfg.timeout_seconds)
        if duty is None or not 0 <= duty <= 255:
            return None
        return duty

    def read_rpm(self) -> int | None:
        cfg = self.config
        if cfg.fan_path is None:
            return None
        return read_int(cfg.fan_path, cfg.timeout_seconds)

    def write_duty(self, duty: int) -> bool:
        cfg = self.config
        if cfg.pwm_path is None:
            return False
        duty = max(0, min(255, duty))
        return write_int(cfg.pwm_path, duty, cfg.timeout_seconds)

    def _valid_temp(self, value: int) -> int | None:
        """Return value if in valid range, else None."""
        if (
            self.config.temp_min_valid_celsius
            <= value
            <= self.config.temp_max_valid_celsius
        ):
            return value
        return None


def _bounded(path: str | pathlib.Path, func: Callable[[], T], timeout: float) -> T:
    """Run func on a daemon thread and wait at most timeout seconds for it.

    At most one call per path is in flight: while an earlier call on path is
    still stuck, TimeoutError is raised without starting another thread.
    """
    key = str(path)
    future: concurrent.futures.Future[T] = concurrent.futures.Future()

    def target() -> None:
        try:
            future.set_result(func())
        except Exception as e:
            future.set_exception(e)

    with _in_flight_lock:
        stuck = _in_flight.get(key)
        if stuck is not None and stuck.is_alive():
            raise TimeoutError("%s: earlier call still pending" % key)
        thread = threading.Thread(target=target, name="hwmon", daemon=True)
        _in_flight[key] = thread
        thread.start()
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        raise TimeoutError("%s: no response in %gs" % (key, timeout)) from None


def read_int(path: str | pathlib.Path, timeout: float = 1.0) -> int | None:
    """Read an integer from a sysfs file. Returns None on failure or timeout."""
    try:
        return int(_bounded(path, pathlib.Path(path).read_text, timeout).strip())
    except TimeoutError as e:
        log.warning("Timed out reading %s", e)
        return None
    except (OSError, ValueError):
        return None


def write_int(path: str | pathlib.Path, value: int, timeout: float = 1.0) -> bool:
    """Write an integer to a sysfs file. Returns False on failure or timeout."""
    try:
        _ = _bounded(path, lambda: pathlib.Path(path).write_text(str(value)), timeout)
    except TimeoutError as e:
        log.error("Timed out writing %s", e)
        return False
    except OSError as e:
        log.error("Failed to write %s: %s", path, e)
        return False
    return True


def _hwmon_index(hwmon: pathlib.Path) -> int:
    suffix = hwmon.name.removeprefix("hwmon")
    return int(suffix) if suffix.isdigit() else -1


def _hwmon_name(hwmon: pathlib.Path) -> str:
    try:
        return (hwmon / "name").read_text().strip()
    except OSError:
        return ""


def _temp_inputs(hwmon: pathlib.Path) -> tuple[str, ...]:
    return tuple(str(p) for p in sorted(hwmon.glob("temp*_input")))
