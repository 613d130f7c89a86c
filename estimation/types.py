from dataclasses import dataclass, field
from typing import List

from drive.types import DriveConfig, SamplerConfig
from geometry import Pose2D
from geometry.se2 import relative_to, transform_by
from vision.localization.types import VisionEstimatorConfig


@dataclass
class PoseEstimatorConfig:
    """
    - state_std_devs: 里程计状态标准差 (x[m], y[m], yaw[rad])，越大越信视觉
    - history_seconds: 保留的里程计位姿历史长度，视觉延迟超过它时按最旧记录钳位修正
    """
    state_std_devs: List[float] = field(default_factory=lambda: [0.1, 0.1, 0.1])
    history_seconds: float = 1.5


@dataclass
class LocalizationConfig:
    drive: DriveConfig = field(default_factory=DriveConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    vision: VisionEstimatorConfig = field(default_factory=VisionEstimatorConfig)
    estimator: PoseEstimatorConfig = field(default_factory=PoseEstimatorConfig)


@dataclass(frozen=True, slots=True)
class VisionUpdate:
    """时刻 t 的视觉修正：修正后的位姿 + t 时刻的纯里程计位姿"""
    vision_pose: Pose2D
    odometry_pose: Pose2D

    def compensate(self, odometry_pose: Pose2D) -> Pose2D:
        """把 t 之后的里程计运动叠加到修正后的位姿上"""
        delta = relative_to(odometry_pose, self.odometry_pose)
        return transform_by(self.vision_pose, delta)
