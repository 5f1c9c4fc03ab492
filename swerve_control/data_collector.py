"""Data collection and CSV logging for swerve drivetrain runs.

This module provides CSV data logging for:
- Telemetry published by the drivetrain each cycle (estimated pose, gyro,
  odometry position)
- Vision measurements (and whether the estimator fused them)
- Reference path and tracking error (simulation runs)
- Pose estimator diagnostics (gains, accepted/ignored counts)

`DataCollector` doubles as the drivetrain's telemetry sink: `put_pose` and
`put_number` stage values, and `log_cycle` writes them as one row.
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

import numpy as np

from .config import TERM_BLUE, TERM_RESET
from .geometry import Pose2d

TELEMETRY_COLUMNS = [
    "timestamp",
    "field_x",
    "field_y",
    "field_theta",
    "gyro_deg",
    "odometry_x",
    "odometry_y",
]


class DataCollector:
    """Manages CSV file creation and logging for drivetrain data.

    Attributes:
        run_dir: Directory path for this run's output files.
        telemetry_csv_file: File handle for per-cycle telemetry CSV.
        vision_csv_file: File handle for vision measurement CSV.
        tracking_csv_file: File handle for tracking error CSV.
        estimator_csv_file: File handle for estimator diagnostics CSV.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.telemetry_csv_file: Optional[TextIO] = None
        self.telemetry_csv_writer: Any = None
        self.vision_csv_file: Optional[TextIO] = None
        self.vision_csv_writer: Any = None
        self.tracking_csv_file: Optional[TextIO] = None
        self.tracking_csv_writer: Any = None
        self.estimator_csv_file: Optional[TextIO] = None
        self.estimator_csv_writer: Any = None

        # Values staged by the telemetry sink interface for the current cycle
        self._staged: Dict[str, float] = {}

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.telemetry_output_path: Path = self.run_dir / "telemetry.csv"
        self.vision_output_path: Path = self.run_dir / "vision_data.csv"
        self.tracking_output_path: Path = self.run_dir / "tracking_metrics.csv"
        self.estimator_output_path: Path = self.run_dir / "estimator_diagnostics.csv"
        self.reference_output_path: Path = self.run_dir / "reference_path.csv"

    def setup(self) -> None:
        """Initialize CSV files with headers.

        Must be called before writing data.
        """
        self.telemetry_csv_file = open(self.telemetry_output_path, "w", newline="")
        self.telemetry_csv_writer = csv.writer(self.telemetry_csv_file)
        self.telemetry_csv_writer.writerow(TELEMETRY_COLUMNS)
        self.telemetry_csv_file.flush()

        self.vision_csv_file = open(self.vision_output_path, "w", newline="")
        self.vision_csv_writer = csv.writer(self.vision_csv_file)
        self.vision_csv_writer.writerow(["timestamp", "received", "x", "y", "theta", "accepted"])
        self.vision_csv_file.flush()

        self.tracking_csv_file = open(self.tracking_output_path, "w", newline="")
        self.tracking_csv_writer = csv.writer(self.tracking_csv_file)
        self.tracking_csv_writer.writerow(
            [
                "timestamp",
                "x_ref",
                "y_ref",
                "x_true",
                "y_true",
                "estimate_error",
                "odometry_error",
                "tracking_error",
            ]
        )
        self.tracking_csv_file.flush()

        self.estimator_csv_file = open(self.estimator_output_path, "w", newline="")
        self.estimator_csv_writer = csv.writer(self.estimator_csv_file)
        self.estimator_csv_writer.writerow(
            [
                "timestamp",
                "buffer_size",
                "vision_updates",
                "accepted",
                "stale_ignored",
                "invalid_ignored",
                "correction_norm",
                "correction_theta",
            ]
        )
        self.estimator_csv_file.flush()

        logging.info(f"{TERM_BLUE}✓ Initialized data collection to {self.run_dir}/{TERM_RESET}")

    # ------------------------------------------------------------------
    # Telemetry sink interface
    # ------------------------------------------------------------------

    def put_pose(self, key: str, pose: Pose2d) -> None:
        """Stage a pose value under `key` (written by `log_cycle`)."""
        prefix = key.lower().replace(" ", "_")
        self._staged[f"{prefix}_x"] = pose.x
        self._staged[f"{prefix}_y"] = pose.y
        self._staged[f"{prefix}_theta"] = pose.rotation.radians

    def put_number(self, key: str, value: float) -> None:
        """Stage a number under `key` (written by `log_cycle`)."""
        self._staged[key] = value

    def log_cycle(self, timestamp: float) -> None:
        """Write the values staged this cycle as one telemetry row.

        Args:
            timestamp: Cycle time (seconds).
        """
        row = [
            timestamp,
            self._staged.get("field_x", ""),
            self._staged.get("field_y", ""),
            self._staged.get("field_theta", ""),
            self._staged.get("gyro (deg)", ""),
            self._staged.get("swerve odometry x", ""),
            self._staged.get("swerve odometry y", ""),
        ]
        self.telemetry_csv_writer.writerow(row)
        if self.telemetry_csv_file:
            self.telemetry_csv_file.flush()
        self._staged.clear()

    # ------------------------------------------------------------------
    # Run data
    # ------------------------------------------------------------------

    def log_vision(self, timestamp: float, received: float, pose: Pose2d, accepted: bool) -> None:
        """Log a vision measurement to CSV.

        Args:
            timestamp: Capture timestamp (seconds).
            received: Time the measurement reached the estimator (seconds).
            pose: Measured pose.
            accepted: Whether the estimator fused it.
        """
        self.vision_csv_writer.writerow(
            [timestamp, received, pose.x, pose.y, pose.rotation.radians, int(accepted)]
        )
        if self.vision_csv_file:
            self.vision_csv_file.flush()

    def log_tracking(
        self,
        timestamp: float,
        x_ref: float,
        y_ref: float,
        x_true: float,
        y_true: float,
        estimate_error: float,
        odometry_error: float,
        tracking_error: float,
    ) -> None:
        """Log reference, ground truth and error metrics to CSV.

        Args:
            timestamp: Current time (seconds).
            x_ref: Reference x position (meters).
            y_ref: Reference y position (meters).
            x_true: Ground-truth x position (meters).
            y_true: Ground-truth y position (meters).
            estimate_error: Distance between estimate and ground truth (meters).
            odometry_error: Distance between plain odometry and ground truth (meters).
            tracking_error: Distance between reference and ground truth (meters).
        """
        self.tracking_csv_writer.writerow(
            [
                timestamp,
                x_ref,
                y_ref,
                x_true,
                y_true,
                estimate_error,
                odometry_error,
                tracking_error,
            ]
        )
        if self.tracking_csv_file:
            self.tracking_csv_file.flush()

    def log_estimator_diagnostics(self, timestamp: float, diagnostics: Dict[str, Any]) -> None:
        """Log pose estimator diagnostics to CSV.

        Args:
            timestamp: Current time (seconds).
            diagnostics: Dictionary from SwerveDrivePoseEstimator.get_diagnostics().
        """
        self.estimator_csv_writer.writerow(
            [
                timestamp,
                diagnostics["buffer_size"],
                diagnostics["vision_updates"],
                diagnostics["accepted"],
                diagnostics["stale_ignored"],
                diagnostics["invalid_ignored"],
                diagnostics["correction_norm"],
                diagnostics["correction_theta"],
            ]
        )
        if self.estimator_csv_file:
            self.estimator_csv_file.flush()

    def log_reference_path(self, trajectory: Dict[str, np.ndarray]) -> None:
        """Write the sampled reference path to its own CSV file.

        Args:
            trajectory: Dictionary with 't', 'x', 'y' arrays (see path.path_trajectory).
        """
        with open(self.reference_output_path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["t", "x_ref", "y_ref"])
            for t, x, y in zip(trajectory["t"], trajectory["x"], trajectory["y"]):
                writer.writerow([float(t), float(x), float(y)])

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        if self.telemetry_csv_file:
            self.telemetry_csv_file.close()
        if self.vision_csv_file:
            self.vision_csv_file.close()
        if self.tracking_csv_file:
            self.tracking_csv_file.close()
        if self.estimator_csv_file:
            self.estimator_csv_file.close()

        logging.info(f"{TERM_BLUE}✓ Saved run data to {self.run_dir}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()
