"""Configuration parameters for the swerve control system.

This module centralizes all configuration parameters including:
- Physical drivetrain parameters (module offsets, speed limits)
- Control loop timing
- Pose estimator noise parameters
- Terminal colors for logging
- WebSocket vision client parameters

All parameters are documented with their purpose and valid ranges.
`DrivetrainConfig` bundles the subset a drivetrain needs and can be loaded
either from this module or from a JSON settings file.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from .errors import ConstructionError

# ============================================================================
# Physical Drivetrain Parameters
# ============================================================================

TRACK_WIDTH = 0.5715
"""Distance between left and right module centers (meters).
Fixed by chassis design (22.5 in)."""

WHEEL_BASE = 0.5715
"""Distance between front and rear module centers (meters).
Fixed by chassis design (22.5 in)."""

MODULE_TRANSLATIONS = (
    (WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),  # left front
    (WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),  # right front
    (-WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),  # right rear
    (-WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),  # left rear
)
"""Module offsets from chassis center (meters), +x forward, +y left.

Order matters: left front, right front, right rear, left rear. Module numbers
used by the drivetrain index into this tuple."""

MAX_MODULE_SPEED = 4.5
"""Maximum module (wheel) linear speed (m/s). Hardware limit.

Commands exceeding this are scaled down uniformly across all four modules."""


# ============================================================================
# Control Loop Timing
# ============================================================================

LOOP_PERIOD = 0.02
"""Control loop period (seconds). 50 Hz."""

DISCRETIZE_DT = 0.01
"""Timestep used to discretize robot-relative chassis speed commands (seconds).
Independent of LOOP_PERIOD."""


# ============================================================================
# Pose Estimator Parameters
# ============================================================================

STATE_STD_DEVS = np.array([0.1, 0.1, 0.1])
"""Standard deviations of the odometry state estimate [x (m), y (m), theta (rad)].

Larger values = trust odometry less, vision corrections pull harder."""

VISION_STD_DEVS = np.array([0.9, 0.9, 0.9])
"""Default vision measurement standard deviations [x (m), y (m), theta (rad)].

Used when a vision measurement arrives without its own std devs.
Larger values = trust vision less."""

POSE_BUFFER_DURATION = 1.5
"""Length of the odometry pose history (seconds).

Vision measurements timestamped older than the newest odometry sample minus
this duration are ignored."""


# ============================================================================
# Terminal Colors
# ============================================================================

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for highlighted status messages (RGB: 35, 116, 247)."""

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for warnings in status messages (RGB: 247, 72, 35)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# WebSocket Vision Client Configuration
# ============================================================================

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""


# ============================================================================
# Simulation Configuration
# ============================================================================

SIM_DURATION = 20.0
"""Default duration of a simulation run (seconds)."""

SIM_VISION_PERIOD = 0.1
"""Period between simulated vision measurements (seconds). 10 Hz."""

SIM_VISION_LATENCY = 0.05
"""Simulated vision processing latency (seconds)."""

SIM_VISION_NOISE = (0.05, 0.05, 0.02)
"""Simulated vision noise standard deviations [x (m), y (m), theta (rad)]."""


_REQUIRED_KEYS = ("module_translations", "max_module_speed")


@dataclass
class DrivetrainConfig:
    """Parameters a drivetrain needs at construction.

    Attributes:
        module_translations: Four (x, y) module offsets from chassis center (m).
        max_module_speed: Module speed ceiling used for desaturation (m/s).
        discretize_dt: Timestep for discretizing robot-relative commands (s).
        state_std_devs: Odometry std devs [x, y, theta].
        vision_std_devs: Default vision std devs [x, y, theta].
    """

    module_translations: Tuple[Tuple[float, float], ...] = MODULE_TRANSLATIONS
    max_module_speed: float = MAX_MODULE_SPEED
    discretize_dt: float = DISCRETIZE_DT
    state_std_devs: List[float] = field(default_factory=lambda: list(STATE_STD_DEVS))
    vision_std_devs: List[float] = field(default_factory=lambda: list(VISION_STD_DEVS))

    @classmethod
    def from_module(cls, cfg: Any = None) -> "DrivetrainConfig":
        """Build a config from a config module (default: this module).

        Raises:
            ConstructionError: If a required parameter is missing.
        """
        if cfg is None:
            from swerve_control import config as cfg

        try:
            return cls(
                module_translations=tuple(tuple(t) for t in cfg.MODULE_TRANSLATIONS),
                max_module_speed=float(cfg.MAX_MODULE_SPEED),
                discretize_dt=float(cfg.DISCRETIZE_DT),
                state_std_devs=[float(v) for v in cfg.STATE_STD_DEVS],
                vision_std_devs=[float(v) for v in cfg.VISION_STD_DEVS],
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ConstructionError(f"Failed to load config: {e}") from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DrivetrainConfig":
        """Build a config from a parsed settings dictionary.

        Keys not present fall back to this module's defaults, except
        `module_translations` and `max_module_speed`, which are required.

        Raises:
            ConstructionError: If required keys are missing or malformed.
        """
        missing = [key for key in _REQUIRED_KEYS if key not in data]
        if missing:
            raise ConstructionError(f"Failed to load config: missing {', '.join(missing)}")

        try:
            translations = tuple((float(x), float(y)) for x, y in data["module_translations"])
            config = cls(
                module_translations=translations,
                max_module_speed=float(data["max_module_speed"]),
                discretize_dt=float(data.get("discretize_dt", DISCRETIZE_DT)),
                state_std_devs=[float(v) for v in data.get("state_std_devs", STATE_STD_DEVS)],
                vision_std_devs=[float(v) for v in data.get("vision_std_devs", VISION_STD_DEVS)],
            )
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"Failed to load config: {e}") from e

        config.validate()
        return config

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "DrivetrainConfig":
        """Load a config from a JSON settings file.

        Raises:
            ConstructionError: If the file cannot be read or parsed.
        """
        settings_path = Path(path)
        try:
            with open(settings_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConstructionError(f"Failed to load config from {settings_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConstructionError(f"Failed to load config from {settings_path}: expected an object")
        return cls.from_dict(data)

    def validate(self) -> None:
        """Check the values that would make the drivetrain unusable.

        Raises:
            ConstructionError: On a wrong module count, a non-positive speed
                limit or std dev vectors that are not three long.
        """
        if len(self.module_translations) != 4:
            raise ConstructionError(
                f"Expected 4 module translations, got {len(self.module_translations)}"
            )
        if not self.max_module_speed > 0.0:
            raise ConstructionError(f"max_module_speed must be positive, got {self.max_module_speed}")
        if len(self.state_std_devs) != 3 or len(self.vision_std_devs) != 3:
            raise ConstructionError("Std devs must have exactly 3 entries [x, y, theta]")


def load_drivetrain_config(path: Optional[Union[str, Path]] = None) -> DrivetrainConfig:
    """Load the drivetrain configuration.

    Args:
        path: Optional JSON settings file. If None, uses this module's constants.

    Returns:
        A validated DrivetrainConfig.

    Raises:
        ConstructionError: If the configuration cannot be loaded.
    """
    if path is None:
        config = DrivetrainConfig.from_module()
        config.validate()
        return config
    return DrivetrainConfig.from_json(path)
