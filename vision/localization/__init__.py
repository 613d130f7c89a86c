# vision/localization/__init__.py
"""
AprilTag 多摄像头车体位姿估计（融合多相机观测到已知 Tag 地图）

公开 API:
- TagPose, CameraPose, TagObservation, PoseCandidate, PoseEstimationResult
- VisionEstimatorConfig
- CandidateFilter 及内置剔除策略
- MultiTagPoseEstimator, fuse_pose_candidates
"""
from .types import (
    TagPose, CameraPose, TagObservation, PoseCandidate, PoseEstimationResult, VisionEstimatorConfig,
)
from .filters import (
    CandidateFilter, accept_all, height_filter, tilt_filter, pose_err_filter,
    field_bounds_filter, all_of, build_filter, filter_from_config, available_filters,
)
from .multi_tag_estimator import MultiTagPoseEstimator, fuse_pose_candidates

__all__ = [
    "TagPose",
    "CameraPose",
    "TagObservation",
    "PoseCandidate",
    "PoseEstimationResult",
    "VisionEstimatorConfig",
    "CandidateFilter",
    "accept_all",
    "height_filter",
    "tilt_filter",
    "pose_err_filter",
    "field_bounds_filter",
    "all_of",
    "build_filter",
    "filter_from_config",
    "available_filters",
    "MultiTagPoseEstimator",
    "fuse_pose_candidates",
]
