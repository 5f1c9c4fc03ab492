#!/usr/bin/env python3
"""
Simulation Runner and WebSocket Vision Client

This module runs the swerve drivetrain against simulated hardware at a fixed
control period, and optionally receives vision pose measurements from a
WebSocket server instead of the built-in simulated camera.

Vision messages are JSON objects:
    {"message_type": "vision", "x": 1.2, "y": 0.4, "theta": 0.1,
     "timestamp": 3.52, "std_devs": [0.1, 0.1, 0.2]}

`theta` is in radians, `timestamp` is on the drivetrain clock (seconds since
the run started), and `std_devs` is optional.
"""

import argparse
import asyncio
import contextlib
import json
import logging
import math
import signal
import sys
from typing import Any, Callable, Dict, Optional, Union

import numpy as np
import websockets

from swerve_control import path
from swerve_control.config import (
    LOOP_PERIOD,
    SIM_DURATION,
    SIM_VISION_LATENCY,
    SIM_VISION_NOISE,
    SIM_VISION_PERIOD,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
    DrivetrainConfig,
    load_drivetrain_config,
)
from swerve_control.data_collector import DataCollector
from swerve_control.drivetrain import SwerveDrivetrain
from swerve_control.follower import HolonomicFollower
from swerve_control.geometry import Pose2d, Rotation2d
from swerve_control.localizer import VisionMeasurement
from swerve_control.sim import SimChassis, SimClock, SimVisionSource


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record based on its level.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        if record.levelno == logging.INFO:
            return record.getMessage()
        else:
            return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


def parse_vision_message(data: Dict[str, Any]) -> Optional[VisionMeasurement]:
    """Build a VisionMeasurement from a parsed vision message.

    Args:
        data: Parsed JSON message.

    Returns:
        The measurement, or None if the message is not a vision message.

    Raises:
        KeyError: If a required field is missing.
        TypeError, ValueError: If a field cannot be converted to a number, or
            the heading is not finite.
    """
    if data.get("message_type") != "vision":
        return None

    theta = float(data["theta"])
    if not math.isfinite(theta):
        raise ValueError(f"Vision heading must be finite, got {theta}")

    pose = Pose2d.from_xy(float(data["x"]), float(data["y"]), Rotation2d(theta))
    timestamp = float(data["timestamp"])

    std_devs = data.get("std_devs")
    if std_devs is not None:
        std_devs = [float(value) for value in std_devs]

    return VisionMeasurement(pose, timestamp, std_devs)


class VisionClient:
    """WebSocket consumer forwarding vision measurements to the drivetrain.

    Runs on the same event loop as the control loop; each measurement is
    handed to `SwerveDrivetrain.add_vision_measurement` between cycles.

    Attributes:
        uri: WebSocket URI to connect to.
        drivetrain: Drivetrain receiving the measurements.
        should_stop: Flag indicating whether to stop the receive loop.
        measurements_received: Count of valid vision messages.
    """

    def __init__(
        self,
        uri: str,
        drivetrain: SwerveDrivetrain,
        clock: Optional[Callable[[], float]] = None,
        data_collector: Optional[DataCollector] = None,
    ) -> None:
        """Initialize the vision client.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).
            drivetrain: Drivetrain receiving the measurements.
            clock: Drivetrain clock, used to log receive times.
            data_collector: Optional collector logging each measurement.

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.drivetrain = drivetrain
        self.clock = clock
        self.data_collector = data_collector
        self.should_stop: bool = False
        self.measurements_received: int = 0

    def process_vision_message(self, data: Dict[str, Any]) -> Optional[bool]:
        """Forward one parsed message to the drivetrain.

        Args:
            data: Parsed JSON message.

        Returns:
            Whether the estimator fused the measurement, or None if the
            message was not a vision message.
        """
        measurement = parse_vision_message(data)
        if measurement is None:
            logging.debug(f"\nReceived unknown message: {json.dumps(data, indent=2)}\n")
            return None

        self.measurements_received += 1
        accepted = self.drivetrain.add_measurement(measurement)

        if self.data_collector is not None:
            received = self.clock() if self.clock is not None else measurement.timestamp
            self.data_collector.log_vision(measurement.timestamp, received, measurement.pose, accepted)

        return accepted

    def parse_and_route_message(self, message: Union[str, bytes]) -> Optional[bool]:
        """Parse incoming message and route it.

        Args:
            message: Raw JSON message string or bytes from WebSocket.

        Returns:
            Result of `process_vision_message`, or None on a parse error.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)
            if not isinstance(data, dict):
                logging.warning(f"Invalid message type: expected object, got {type(data)}")
                return None
            return self.process_vision_message(data)

        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing message data: {e}")
        except Exception as e:
            logging.error(f"Unexpected error processing message: {e}", exc_info=True)
        return None

    async def run(self) -> None:
        """Connect to the vision server and forward messages until stopped.

        Maintains the connection with automatic retry and exponential
        backoff.
        """
        retry_delay = WS_RETRY_DELAY_SECONDS
        max_retry_delay = WS_MAX_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to vision server{TERM_RESET}")
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(
                                websocket.recv(), timeout=WS_TIMEOUT_SECONDS
                            )
                            self.parse_and_route_message(message)
                        except asyncio.TimeoutError:
                            continue
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Connection closed by vision server")
                            break

            except Exception as e:
                if self.should_stop:
                    break
                logging.error(f"Connection error: {e}")
                logging.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, max_retry_delay)

    def stop(self) -> None:
        """Signal the client to stop."""
        self.should_stop = True


class SimulationRunner:
    """Fixed-period control loop against simulated hardware.

    This class manages the complete simulated pipeline:
    - Simulated modules, gyro and ground-truth chassis
    - Drivetrain estimation (odometry + pose estimator) every cycle
    - Vision measurements (simulated camera, or a VisionClient)
    - Reference following through the trajectory controller callbacks
    - Data logging to CSV files

    Attributes:
        drivetrain: The drivetrain under test.
        chassis: Simulated hardware and ground truth.
        follower: Trajectory controller following the reference path.
        data_collector: Handles CSV file logging and telemetry.
        should_stop: Flag indicating whether to stop the control loop.
    """

    def __init__(
        self,
        duration: float = SIM_DURATION,
        output_dir: str = ".",
        use_sim_vision: bool = True,
        real_time: bool = False,
        seed: Optional[int] = None,
        config: Optional[DrivetrainConfig] = None,
        run_dir: Optional[str] = None,
    ) -> None:
        """Initialize the simulation.

        Args:
            duration: Run length (seconds of simulated time).
            output_dir: Base directory for output files.
            use_sim_vision: If True, generate vision measurements internally.
            real_time: If True, sleep one loop period per cycle so external
                vision timestamps line up with wall time.
            seed: Seed for the simulated vision noise.
            config: Drivetrain parameters. Default: swerve_control.config.
            run_dir: Optional explicit output directory for this run.

        Raises:
            ConstructionError: If the drivetrain cannot be built.
        """
        self.duration = duration
        self.real_time = real_time
        self.should_stop: bool = False

        self.config = config if config is not None else load_drivetrain_config()
        self.clock = SimClock()
        self.chassis = SimChassis(self.config.module_translations)
        self.data_collector = DataCollector(output_dir=output_dir, run_dir=run_dir)

        self.drivetrain = SwerveDrivetrain(
            self.chassis.modules,
            self.chassis.gyro,
            self.config,
            telemetry=self.data_collector,
            clock=self.clock,
        )

        self.follower = HolonomicFollower()
        self.drivetrain.configure_trajectory_controller(self.follower)

        self.vision_source: Optional[SimVisionSource] = None
        if use_sim_vision:
            self.vision_source = SimVisionSource(
                SIM_VISION_PERIOD,
                SIM_VISION_LATENCY,
                SIM_VISION_NOISE,
                rng=np.random.default_rng(seed),
            )

        self.start_time: Optional[float] = None

        # Accuracy metrics
        self.cumulative_estimate_error: float = 0.0
        self.cumulative_odometry_error: float = 0.0
        self.sample_count: int = 0
        self.peak_speed: float = 0.0

    def step(self) -> None:
        """Run one control cycle."""
        self.chassis.step(LOOP_PERIOD)
        self.clock.advance(LOOP_PERIOD)
        now = self.clock()

        self.drivetrain.periodic()
        self.data_collector.log_cycle(now)

        if self.vision_source is not None:
            for measurement in self.vision_source.poll(now, self.chassis.true_pose):
                accepted = self.drivetrain.add_measurement(measurement)
                self.data_collector.log_vision(measurement.timestamp, now, measurement.pose, accepted)

        if self.start_time is None:
            self.start_time = now
        elapsed_time = now - self.start_time

        self.follower.follow(elapsed_time)
        measured = self.follower.measured_speeds
        self.peak_speed = max(self.peak_speed, math.hypot(measured.vx, measured.vy))

        true_pose = self.chassis.true_pose
        estimate = self.drivetrain.get_pose()
        odometry = self.drivetrain.get_odometry_pose()
        x_ref, y_ref = path.reference_position(elapsed_time)

        estimate_error = estimate.translation.distance(true_pose.translation)
        odometry_error = odometry.translation.distance(true_pose.translation)
        tracking_error = math.hypot(x_ref - true_pose.x, y_ref - true_pose.y)

        self.cumulative_estimate_error += estimate_error
        self.cumulative_odometry_error += odometry_error
        self.sample_count += 1

        self.data_collector.log_tracking(
            now,
            x_ref,
            y_ref,
            true_pose.x,
            true_pose.y,
            estimate_error,
            odometry_error,
            tracking_error,
        )
        self.data_collector.log_estimator_diagnostics(
            now, self.drivetrain.pose_estimator.get_diagnostics()
        )

    async def run(self) -> None:
        """Run the control loop until the duration elapses or stop() is called."""
        self.follower.start()
        self.data_collector.log_reference_path(path.path_trajectory())
        logging.info(f"{TERM_BLUE}✓ Running swerve simulation for {self.duration:.1f}s{TERM_RESET}")

        steps = int(round(self.duration / LOOP_PERIOD))
        for _ in range(steps):
            if self.should_stop:
                break
            self.step()
            await asyncio.sleep(LOOP_PERIOD if self.real_time else 0)

        self.drivetrain.stop()
        self.report()

    def report(self) -> None:
        """Log average estimate and odometry errors for the run."""
        if self.sample_count == 0:
            return

        est_avg_mm = self.cumulative_estimate_error / self.sample_count * 1000.0
        odom_avg_mm = self.cumulative_odometry_error / self.sample_count * 1000.0
        diagnostics = self.drivetrain.pose_estimator.get_diagnostics()

        logging.info(
            f"{TERM_BLUE}\033[1m→ EST Avg: {est_avg_mm:.1f}mm  ODOM Avg: {odom_avg_mm:.1f}mm  "
            f"Peak speed: {self.peak_speed:.2f}m/s{TERM_RESET}"
        )
        logging.info(
            f"{TERM_BLUE}\033[1m→ Vision accepted: {diagnostics['accepted']}  "
            f"saturated commands: {self.drivetrain.saturation_events}{TERM_RESET}"
        )

        ignored = diagnostics["stale_ignored"] + diagnostics["invalid_ignored"]
        if ignored:
            logging.info(
                f"{TERM_ORANGE}→ Vision ignored: {diagnostics['stale_ignored']} stale, "
                f"{diagnostics['invalid_ignored']} invalid{TERM_RESET}"
            )

    def stop(self) -> None:
        """Signal the runner to stop."""
        self.should_stop = True

    def __enter__(self) -> "SimulationRunner":
        self.data_collector.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.data_collector.cleanup()


async def main(
    duration: float = SIM_DURATION,
    vision_uri: Optional[str] = None,
    output_dir: str = ".",
    seed: Optional[int] = None,
) -> None:
    """Main entry point for a simulation run.

    Creates a SimulationRunner (and a VisionClient when `vision_uri` is
    given), sets up signal handlers for graceful shutdown, and runs the loop.

    Args:
        duration: Run length (seconds).
        vision_uri: Optional WebSocket URI of an external vision server.
        output_dir: Base directory for output files.
        seed: Seed for the simulated vision noise.
    """
    with SimulationRunner(
        duration=duration,
        output_dir=output_dir,
        use_sim_vision=vision_uri is None,
        real_time=vision_uri is not None,
        seed=seed,
    ) as runner:
        client: Optional[VisionClient] = None
        if vision_uri is not None:
            client = VisionClient(
                vision_uri, runner.drivetrain, clock=runner.clock, data_collector=runner.data_collector
            )

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            runner.stop()
            if client is not None:
                client.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        client_task = asyncio.create_task(client.run()) if client is not None else None
        try:
            await runner.run()
        finally:
            if client is not None and client_task is not None:
                client.stop()
                client_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await client_task


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Swerve drivetrain simulation with odometry and vision pose estimation"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument(
        "--duration", type=float, default=SIM_DURATION, help="Simulated run length in seconds"
    )
    parser.add_argument(
        "--vision-uri", default=None, help="WebSocket URI of an external vision server"
    )
    parser.add_argument("--output-dir", default=".", help="Base directory for run output")
    parser.add_argument("--seed", type=int, default=None, help="Seed for simulated vision noise")
    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()

    setup_logging(args.verbose)

    try:
        asyncio.run(
            main(
                duration=args.duration,
                vision_uri=args.vision_uri,
                output_dir=args.output_dir,
                seed=args.seed,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
