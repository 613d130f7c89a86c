from dataclasses import dataclass, field
import math
from typing import List, Optional

import numpy as np

from geometry import Pose2D


@dataclass(slots=True)
class TagPose:
    """AprilTag 在场地（world）坐标系中的位姿
    - x, y, z: 标签中心位置（m）
    - roll, pitch, yaw: ZYX 欧拉角（弧度）
    表示 T_world_tag : world ← tag
    """
    x: float
    y: float
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(slots=True)
class CameraPose:
    """相机在车体坐标系下的安装外参
    表示 T_car_cam : car ← cam
    """
    x: float
    y: float
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(slots=True)
class TagObservation:
    """
    单个 Tag 的相机系观测（cam ← tag），字段名与 pyapriltags.Detection 一致，
    Detection 对象也可以直接传给估计器。
    - pose_R: 3×3 旋转矩阵，或 Rodrigues rvec(3,)
    - pose_t: (3,) 或 (3,1) 平移
    - pose_err: 重投影误差/歧义度，越大越不可信（没有时为 0）
    """
    tag_id: int
    pose_R: np.ndarray
    pose_t: np.ndarray
    pose_err: float = 0.0


@dataclass(slots=True)
class PoseCandidate:
    """单次 Tag 观测反推出的车体位姿候选（诊断记录）"""
    camera_index: int
    tag_id: int
    T_world_car: np.ndarray          # 4×4
    pose: Pose2D                     # 投到地面的 (x, y, yaw)
    distance_m: float
    pose_err: float = 0.0
    # 用当前里程计位姿推算的 Tag 场地位置，只用于显示
    T_world_tag_observed: Optional[np.ndarray] = None

    @property
    def z(self) -> float:
        return float(self.T_world_car[2, 3])

    @property
    def tilt(self) -> float:
        """车体 z 轴相对竖直方向的夹角（弧度）"""
        return float(math.acos(max(-1.0, min(1.0, float(self.T_world_car[2, 2])))))


@dataclass(slots=True)
class PoseEstimationResult:
    """多 Tag 融合结果：位姿点估计 + 每轴标准差 (x[m], y[m], yaw[rad])"""
    pose: Pose2D
    std_dev: np.ndarray
    tag_count: int = 1
    timestamp: Optional[float] = None

    def std_tuple(self):
        return float(self.std_dev[0]), float(self.std_dev[1]), float(self.std_dev[2])


@dataclass
class VisionEstimatorConfig:
    """
    - single_observation_translation_std / rotation_std: 只有一个有效候选时使用的固定标准差
    - max_height_m: 候选车体离地高度的绝对值上限
    - max_pose_err: 观测歧义度上限
    - max_tilt_rad: 车体倾角上限（底盘不会离开地面）
    - field_length_m / field_width_m / field_margin_m: 场地边界（含容差）
    - parallel_cameras: 各相机的候选重建是否放到线程池并行
    """
    single_observation_translation_std: float = 0.5
    single_observation_rotation_std: float = math.radians(30.0)

    max_height_m: float = 0.5
    max_pose_err: float = 0.2
    max_tilt_rad: float = math.radians(15.0)
    field_length_m: float = 16.54
    field_width_m: float = 8.21
    field_margin_m: float = 0.5

    filter_names: List[str] = field(default_factory=lambda: ["height", "field_bounds", "pose_err"])
    parallel_cameras: bool = False


