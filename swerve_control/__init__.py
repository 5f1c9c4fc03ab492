"""Swerve Control - Kinematics, Odometry and Pose Estimation for Swerve Drivetrains

A four-module swerve drivetrain core: converts chassis velocity commands into
per-module wheel commands, integrates wheel odometry into a field pose, and
fuses late, noisy vision pose measurements into that pose.

## Architecture Overview

### Layer 1: Kinematics (model.py)
Maps between whole-chassis velocity and per-module (speed, angle) states.
- Inverse kinematics: 8x3 matrix, one row pair per module
- Forward kinematics: least-squares pseudo-inverse of the same matrix
- Desaturation: uniform scaling so no module exceeds its speed limit
- Discretization: compensates for translating while rotating over one period

### Layer 2: Odometry (odometry.py)
Integrates module distance deltas along the SE(2) exponential map.
- Heading always taken from the gyro (plus reset offset)
- First update without a baseline contributes zero translation

### Layer 3: Pose Estimation (localizer.py, buffer.py)
Fuses vision measurements arriving late and out of order.
- Bounded, time-indexed odometry history (1.5 s)
- Per-axis gain from state and vision standard deviations
- Corrections carried forward to every later odometry sample
- Measurements older than the history are ignored

### Layer 4: Drivetrain (drivetrain.py)
Owns the modules and gyro, runs estimation every cycle, and exposes the
pose and command surface to trajectory controllers and vision clients.

## Modules

### Core
- `config.py` - Centralized constants and `DrivetrainConfig`
- `errors.py` - Construction failure type
- `geometry.py` - Rotation2d, Translation2d, Pose2d, Transform2d, Twist2d
- `model.py` - ChassisSpeeds, module states, kinematics, desaturation
- `odometry.py` - Swerve drive odometry
- `buffer.py` - Time-interpolatable history buffer
- `localizer.py` - Swerve drive pose estimator
- `drivetrain.py` - Drivetrain facade

### Simulation & Data
- `sim.py` - Simulated modules, gyro, chassis, clock and vision source
- `path.py` - Reference trajectory (Lemniscate of Gerono)
- `follower.py` - Feedforward + proportional trajectory follower
- `data_collector.py` - CSV data logging and telemetry sink
- `client.py` - Simulation runner and WebSocket vision client

## Quick Start

```python
from swerve_control.client import main
import asyncio

asyncio.run(main())
```

Or use the command-line interface:
```bash
python -m swerve_control --duration 20 --seed 1
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

# Export key classes for convenience
from .config import DrivetrainConfig
from .data_collector import DataCollector
from .drivetrain import SwerveDrivetrain
from .errors import ConstructionError
from .geometry import Pose2d, Rotation2d, Transform2d, Translation2d, Twist2d
from .localizer import SwerveDrivePoseEstimator, VisionMeasurement
from .model import (
    ChassisSpeeds,
    ModulePosition,
    ModuleState,
    SwerveDriveKinematics,
    desaturate_wheel_speeds,
    discretize,
)
from .odometry import SwerveDriveOdometry

__all__ = [
    "ChassisSpeeds",
    "ConstructionError",
    "DataCollector",
    "DrivetrainConfig",
    "ModulePosition",
    "ModuleState",
    "Pose2d",
    "Rotation2d",
    "SwerveDriveKinematics",
    "SwerveDriveOdometry",
    "SwerveDrivePoseEstimator",
    "SwerveDrivetrain",
    "Transform2d",
    "Translation2d",
    "Twist2d",
    "VisionMeasurement",
    "desaturate_wheel_speeds",
    "discretize",
]
