"""Simulated drivetrain hardware for offline runs and tests.

Provides stand-ins for the hardware collaborators the drivetrain talks to:
- SimSwerveModule: steers instantly, integrates speed into wheel distance
- SimGyro: integrates chassis angular velocity into yaw
- SimChassis: advances modules, gyro and a ground-truth pose each step
- SimVisionSource: noisy ground-truth poses delivered after a latency
- SimClock: manually advanced time source shared by all of the above
"""

import math
from collections import deque
from typing import Deque, List, Optional, Sequence, Tuple

import numpy as np

from .geometry import Pose2d, Rotation2d, Translation2d, Twist2d
from .localizer import VisionMeasurement
from .model import ModulePosition, ModuleState, SwerveDriveKinematics


class SimClock:
    """Manually advanced clock. Call the instance to read the time."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def advance(self, dt: float) -> None:
        self.now += dt

    def __call__(self) -> float:
        return self.now


class SimSwerveModule:
    """Ideal swerve module: reaches the commanded state immediately."""

    def __init__(self, module_number: int) -> None:
        self.module_number = module_number
        self._speed = 0.0
        self._angle = Rotation2d()
        self._distance = 0.0

    def set_desired_state(self, state: ModuleState) -> None:
        optimized = state.optimize(self._angle)
        self._speed = optimized.speed
        self._angle = optimized.angle

    def get_state(self) -> ModuleState:
        return ModuleState(self._speed, self._angle)

    def get_position(self) -> ModulePosition:
        return ModulePosition(self._distance, self._angle)

    def step(self, dt: float) -> None:
        self._distance += self._speed * dt


class SimGyro:
    """Ideal gyro reporting yaw in degrees."""

    def __init__(self, yaw_degrees: float = 0.0) -> None:
        self._yaw_degrees = yaw_degrees

    def get_yaw_degrees(self) -> float:
        return self._yaw_degrees

    def set_yaw_degrees(self, degrees: float) -> None:
        self._yaw_degrees = degrees

    def reset(self) -> None:
        self._yaw_degrees = 0.0

    def step(self, omega: float, dt: float) -> None:
        self._yaw_degrees += math.degrees(omega * dt)


class SimChassis:
    """Ground-truth rigid body driven by the simulated modules.

    Attributes:
        modules: The four simulated modules, in module order.
        gyro: The simulated gyro.
        true_pose: Actual field pose of the chassis.
    """

    def __init__(
        self,
        module_translations: Sequence[Tuple[float, float]],
        initial_pose: Optional[Pose2d] = None,
    ) -> None:
        self.kinematics = SwerveDriveKinematics(
            *(Translation2d(x, y) for x, y in module_translations)
        )
        self.modules = [SimSwerveModule(i) for i in range(len(module_translations))]
        self.gyro = SimGyro()
        self.true_pose = initial_pose if initial_pose is not None else Pose2d()

    def step(self, dt: float) -> None:
        """Advance the chassis by `dt` seconds using the current module states."""
        speeds = self.kinematics.to_chassis_speeds([m.get_state() for m in self.modules])

        for module in self.modules:
            module.step(dt)
        self.gyro.step(speeds.omega, dt)

        self.true_pose = self.true_pose.exp(
            Twist2d(speeds.vx * dt, speeds.vy * dt, speeds.omega * dt)
        )


class SimVisionSource:
    """Camera pipeline stand-in producing noisy, delayed pose measurements."""

    def __init__(
        self,
        period: float,
        latency: float,
        noise_std_devs: Sequence[float],
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """Initialize the vision source.

        Args:
            period: Time between captures (seconds).
            latency: Delay between capture and delivery (seconds).
            noise_std_devs: Gaussian noise [x (m), y (m), theta (rad)].
            rng: Random generator. Default: a fresh unseeded generator.
        """
        self.period = period
        self.latency = latency
        self.noise_std_devs = np.asarray(noise_std_devs, dtype=float)
        self.rng = rng if rng is not None else np.random.default_rng()
        self._last_capture: Optional[float] = None
        self._pending: Deque[VisionMeasurement] = deque()

    def poll(self, now: float, true_pose: Pose2d) -> List[VisionMeasurement]:
        """Capture if due, and return measurements whose latency has elapsed.

        Args:
            now: Current time (seconds).
            true_pose: Ground-truth pose at `now`.

        Returns:
            Measurements ready for delivery, oldest first, stamped with their
            capture time.
        """
        if self._last_capture is None or now - self._last_capture >= self.period:
            noise = self.rng.normal(0.0, self.noise_std_devs)
            noisy_pose = Pose2d(
                Translation2d(true_pose.x + noise[0], true_pose.y + noise[1]),
                true_pose.rotation + Rotation2d(noise[2]),
            )
            self._pending.append(
                VisionMeasurement(noisy_pose, now, [float(s) for s in self.noise_std_devs])
            )
            self._last_capture = now

        ready = []
        while self._pending and now - self._pending[0].timestamp >= self.latency:
            ready.append(self._pending.popleft())
        return ready
