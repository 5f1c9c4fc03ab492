"""Tests for CSV data collection."""

import csv

import pytest

from swerve_control import path
from swerve_control.data_collector import TELEMETRY_COLUMNS, DataCollector
from swerve_control.geometry import Pose2d, Rotation2d


def read_rows(file_path):
    with open(file_path) as f:
        return list(csv.DictReader(f))


def test_run_dir_from_environment(tmp_path, monkeypatch):
    run_dir = tmp_path / "from_env"
    monkeypatch.setenv("RUN_DIR", str(run_dir))

    collector = DataCollector(output_dir=str(tmp_path))

    assert collector.run_dir == run_dir
    assert run_dir.is_dir()


def test_timestamped_run_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("RUN_DIR", raising=False)
    collector = DataCollector(output_dir=str(tmp_path))

    assert collector.run_dir.parent == tmp_path / "results"
    assert collector.run_dir.name.startswith("run_")


def test_output_dir_must_be_a_directory(tmp_path):
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x")
    with pytest.raises(ValueError):
        DataCollector(output_dir=str(not_a_dir))


def test_telemetry_row_per_cycle(tmp_path):
    with DataCollector(run_dir=str(tmp_path)) as collector:
        collector.put_pose("Field", Pose2d.from_xy(1.0, 2.0, Rotation2d(0.5)))
        collector.put_number("gyro (deg)", 28.6)
        collector.put_number("swerve odometry x", 0.9)
        collector.put_number("swerve odometry y", 2.1)
        collector.log_cycle(0.02)

        # Nothing staged: the next row only has a timestamp
        collector.log_cycle(0.04)

    rows = read_rows(tmp_path / "telemetry.csv")
    assert list(rows[0].keys()) == TELEMETRY_COLUMNS
    assert float(rows[0]["field_x"]) == 1.0
    assert float(rows[0]["field_theta"]) == pytest.approx(0.5)
    assert float(rows[0]["gyro_deg"]) == 28.6
    assert float(rows[0]["odometry_y"]) == 2.1
    assert rows[1]["field_x"] == ""


def test_vision_and_tracking_logs(tmp_path):
    with DataCollector(run_dir=str(tmp_path)) as collector:
        collector.log_vision(0.1, 0.15, Pose2d.from_xy(0.5, 0.25), False)
        collector.log_tracking(0.2, 0.0, 0.1, 0.01, 0.09, 0.02, 0.03, 0.014)

    vision = read_rows(tmp_path / "vision_data.csv")
    assert vision[0]["accepted"] == "0"
    assert float(vision[0]["received"]) == 0.15

    tracking = read_rows(tmp_path / "tracking_metrics.csv")
    assert float(tracking[0]["odometry_error"]) == 0.03


def test_estimator_diagnostics_log(tmp_path):
    diagnostics = {
        "buffer_size": 75,
        "vision_updates": 3,
        "accepted": 12,
        "stale_ignored": 1,
        "invalid_ignored": 0,
        "correction_norm": 0.01,
        "correction_theta": -0.002,
    }
    with DataCollector(run_dir=str(tmp_path)) as collector:
        collector.log_estimator_diagnostics(1.0, diagnostics)

    rows = read_rows(tmp_path / "estimator_diagnostics.csv")
    assert rows[0]["buffer_size"] == "75"
    assert rows[0]["stale_ignored"] == "1"


def test_reference_path(tmp_path):
    collector = DataCollector(run_dir=str(tmp_path))
    trajectory = path.path_trajectory(t_max=1.0, dt=0.5)

    collector.log_reference_path(trajectory)

    rows = read_rows(tmp_path / "reference_path.csv")
    assert len(rows) == len(trajectory["t"])
    assert float(rows[0]["x_ref"]) == pytest.approx(0.0)
