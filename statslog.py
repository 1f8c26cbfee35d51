"""CSV logging of per-tick fan samples.

Columns: Timestamp,PWM,FanRPM,CPUTempC,BoardTempC,NVMe1TempC,...
Unavailable values are written as empty cells.
"""

from __future__ import annotations

import csv
import dataclasses
import datetime
import logging
import pathlib
import queue
import re
import threading
from collections.abc import Iterable

log = logging.getLogger("asustor-fancontrol")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class StatsRecord:
    """One sample: PWM, fan speed and zone temperatures at a point in time."""

    timestamp: float
    pwm: int | None
    fan_rpm: int | None
    temps_celsius: dict[str, int | None]


def column_name(zone: str) -> str:
    """CSV column for a zone: cpu -> CPUTempC, nvme-2 -> NVMe2TempC."""
    if zone == "cpu":
        return "CPUTempC"
    if m := re.fullmatch(r"nvme-(\d+)", zone):
        return f"NVMe{m.group(1)}TempC"
    return zone.title().replace("-", "") + "TempC"


def header(zones: Iterable[str]) -> list[str]:
    return ["Timestamp", "PWM", "FanRPM", *(column_name(z) for z in zones)]


def format_row(record: StatsRecord, zones: Iterable[str]) -> list[str]:
    ts = datetime.datetime.fromtimestamp(record.timestamp).strftime(TIMESTAMP_FORMAT)
    return [
        ts,
        _cell(record.pwm),
        _cell(record.fan_rpm),
        *(_cell(record.temps_celsius.get(z)) for z in zones),
    ]


def _cell(value: int | None) -> str:
    return "" if value is None else str(value)


class CsvStatsLog:
    """Appends StatsRecords to a CSV file from a background thread.

    submit() never blocks the caller: when the writer falls behind, records
    are dropped and counted in ``dropped``.
    """

    path: pathlib.Path
    zones: tuple[str, ...]
    dropped: int

    def __init__(
        self,
        path: str | pathlib.Path,
        zones: Iterable[str],
        max_pending: int = 64,
    ) -> None:
        self.path = pathlib.Path(path)
        self.zones = tuple(zones)
        self.dropped = 0
        self._queue: queue.Queue[StatsRecord | None] = queue.Queue(max_pending)
        self._thread = threading.Thread(
            target=self._run, name="statslog", daemon=True
        )

    def start(self) -> None:
        self._thread.start()
        log.info("Logging stats to %s", self.path)

    def submit(self, record: StatsRecord) -> bool:
        """Queue a record for writing. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                log.warning("Stats log behind, %d records dropped", self.dropped)
            return False
        return True

    def close(self, timeout: float = 5.0) -> None:
        """Flush queued records and stop the writer thread."""
        if not self._thread.is_alive():
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            log.warning("Stats log did not drain, closing anyway")
            return
        self._thread.join(timeout)

    def _run(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            new_file = not self.path.exists() or self.path.stat().st_size == 0
            with self.path.open("a", newline="") as f:
                writer = csv.writer(f)
                if new_file:
                    writer.writerow(header(self.zones))
                    f.flush()
                while (record := self._queue.get()) is not None:
                    writer.writerow(format_row(record, self.zones))
                    f.flush()
        except OSError:
            log.exception("Stats log %s failed, stats logging stopped", self.path)
