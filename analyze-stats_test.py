"""Unit tests for analyze-stats.py."""
# pyright: basic

from __future__ import annotations

import math
import pathlib
import sys
from importlib.machinery import SourceFileLoader
from importlib.util import module_from_spec, spec_from_loader

import numpy as np
import pytest

_path = pathlib.Path(__file__).with_name("analyze-stats.py")
_spec = spec_from_loader("analyze_stats", SourceFileLoader("analyze_stats", str(_path)))
assert _spec is not None
_module = module_from_spec(_spec)
sys.modules["analyze_stats"] = _module
assert _spec.loader is not None
_spec.loader.exec_module(_module)

analyze_calibration = _module.analyze_calibration
change_percent = _module.change_percent
change_verdict = _module.change_verdict
column_stats = _module.column_stats
correlation = _module.correlation
load_calibration = _module.load_calibration
load_csv = _module.load_csv
main = _module.main
stability = _module.stability

STATS_CSV = """\
Timestamp,PWM,FanRPM,CPUTempC,BoardTempC,NVMe1TempC
2026-01-04 10:30:00,60,1200,45,38,41
2026-01-04 10:30:10,100,1500,49,39,
2026-01-04 10:30:20,160,2100,55,40,43
2026-01-04 10:30:30,160,2100,55,40,44
"""

CALIBRATION_CSV = """\
PWM,RPM,Notes
0,0,Not running
20,0,Not running
40,620,Running
60,1100,Running
80,1300,Running
100,1800,Running
255,2400,Running
"""


@pytest.fixture
def stats_file(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "system-stats.csv"
    path.write_text(STATS_CSV)
    return path


class TestLoadCsv:
    def test_columns(self, stats_file: pathlib.Path) -> None:
        data = load_csv(stats_file)
        assert set(data) == {
            "timestamps",
            "PWM",
            "FanRPM",
            "CPUTempC",
            "BoardTempC",
            "NVMe1TempC",
        }
        assert len(data["timestamps"]) == 4
        assert data["timestamps"][1] - data["timestamps"][0] == 10
        assert data["PWM"].tolist() == [60, 100, 160, 160]

    def test_empty_cell_is_nan(self, stats_file: pathlib.Path) -> None:
        data = load_csv(stats_file)
        assert math.isnan(data["NVMe1TempC"][1])

    def test_skips_bad_timestamp(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "s.csv"
        path.write_text("Timestamp,PWM\nyesterday,60\n2026-01-04 10:30:00,80\n")
        assert load_csv(path)["PWM"].tolist() == [80]

    def test_missing_header(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "s.csv"
        path.write_text("PWM,RPM\n60,1200\n")
        with pytest.raises(ValueError, match="Timestamp"):
            _ = load_csv(path)


class TestColumnStats:
    def test_ignores_nan(self) -> None:
        assert column_stats(np.array([41.0, np.nan, 43.0, 45.0])) == (41, 45, 43)

    def test_all_nan(self) -> None:
        assert column_stats(np.array([np.nan, np.nan])) is None


class TestCorrelation:
    def test_positive(self) -> None:
        x = np.array([60.0, 100.0, 160.0])
        assert correlation(x, x / 2 + 10) == pytest.approx(1.0)

    def test_negative(self) -> None:
        x = np.array([1.0, 2.0, 3.0])
        assert correlation(x, -x) == pytest.approx(-1.0)

    def test_flat_is_zero(self) -> None:
        x = np.array([60.0, 60.0, 60.0])
        assert correlation(x, np.array([40.0, 50.0, 60.0])) == 0.0

    def test_skips_missing_rows(self) -> None:
        x = np.array([1.0, 2.0, np.nan, 3.0])
        y = np.array([2.0, 4.0, 100.0, 6.0])
        assert correlation(x, y) == pytest.approx(1.0)


class TestStability:
    @pytest.mark.parametrize(
        ("rpm", "verdict"),
        [
            ([1500, 1510, 1490], "very stable"),
            ([1200, 1500, 1600], "moderately stable"),
            ([600, 2400, 600, 2400], "high variance (fan hunting?)"),
        ],
    )
    def test_verdict(self, rpm: list[int], verdict: str) -> None:
        _, _, got = stability(np.array(rpm, dtype=np.float64))
        assert got == verdict

    def test_mean_and_std(self) -> None:
        mean, std, _ = stability(np.array([1000.0, 1200.0]))
        assert mean == 1100
        assert std == 100

    def test_no_data(self) -> None:
        _, _, verdict = stability(np.array([np.nan]))
        assert verdict == "no data"


class TestChangePercent:
    def test_counts_consecutive_changes(self) -> None:
        rpm = np.array([1200.0, 1200.0, 1500.0, 1500.0, 1400.0])
        assert change_percent(rpm) == (2, 4, 50.0)

    def test_single_sample(self) -> None:
        assert change_percent(np.array([1200.0])) == (0, 0, 0.0)

    @pytest.mark.parametrize(
        ("percent", "prefix"),
        [(75.0, "WARNING"), (5.0, "INFO"), (30.0, "Normal")],
    )
    def test_verdict(self, percent: float, prefix: str) -> None:
        assert change_verdict(percent).startswith(prefix)


class TestCalibration:
    def test_summary(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "cal.csv"
        path.write_text(CALIBRATION_CSV)
        summary = analyze_calibration(load_calibration(path))
        assert summary is not None
        assert summary.min_running_pwm == 40
        assert summary.recommended_floor == 45
        assert summary.max_rpm == 2400
        assert summary.half_speed_pwm == 80

    def test_no_half_speed_point(self) -> None:
        summary = analyze_calibration([(0, 0), (100, 300), (255, 2400)])
        assert summary is not None
        assert summary.half_speed_pwm is None

    def test_floor_capped(self) -> None:
        summary = analyze_calibration([(255, 2400)])
        assert summary is not None
        assert summary.recommended_floor == 255

    def test_never_runs(self) -> None:
        assert analyze_calibration([(0, 0), (128, 30), (255, 50)]) is None

    def test_skips_malformed_rows(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "cal.csv"
        path.write_text("PWM,RPM,Notes\n0,0,Not running\nx,y,z\n60,900,Running\n")
        assert load_calibration(path) == [(0, 0), (60, 900)]


class TestMain:
    def test_logs(
        self, stats_file: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["logs", str(stats_file)]) == 0
        out = capsys.readouterr().out
        assert "Samples: 4" in out
        assert "CPU" in out
        assert "PWM vs CPU temperature: 1.00" in out
        assert "Fan speed changes: 2 of 3 (67%)" in out

    def test_logs_png(
        self, stats_file: pathlib.Path, tmp_path: pathlib.Path
    ) -> None:
        _ = pytest.importorskip("matplotlib")
        png = tmp_path / "plot.png"
        assert main(["logs", str(stats_file), "--png", str(png)]) == 0
        assert png.exists()

    def test_empty_log(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "s.csv"
        path.write_text("Timestamp,PWM\n")
        assert main(["logs", str(path)]) == 1

    def test_calibration(
        self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "cal.csv"
        path.write_text(CALIBRATION_CSV)
        assert main(["calibration", str(path)]) == 0
        out = capsys.readouterr().out
        assert "Minimum PWM (fan starts): 40" in out
        assert "--floor cpu=45" in out

    def test_calibration_never_runs(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "cal.csv"
        path.write_text("PWM,RPM,Notes\n0,0,Not running\n255,0,Not running\n")
        assert main(["calibration", str(path)]) == 1

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        assert main(["calibration", str(tmp_path / "nope.csv")]) == 1
