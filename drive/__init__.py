"""
舵轮底盘里程计模块

公开 API:
- WheelState, ModuleState, ChassisSpeeds, OdometrySample
- DriveConfig, SamplerConfig
- SwerveKinematics, KinematicsConfigError, desaturate_wheel_speeds
- OdometrySampler
"""
from .types import (
    WheelState, ModuleState, ChassisSpeeds, OdometrySample,
    DriveConfig, SamplerConfig,
)
from .kinematics import SwerveKinematics, KinematicsConfigError, desaturate_wheel_speeds
from .odometry_sampler import OdometrySampler

__all__ = [
    "WheelState",
    "ModuleState",
    "ChassisSpeeds",
    "OdometrySample",
    "DriveConfig",
    "SamplerConfig",
    "SwerveKinematics",
    "KinematicsConfigError",
    "desaturate_wheel_speeds",
    "OdometrySampler",
]
