# vision/__init__.py

from .localization import MultiTagPoseEstimator, PoseEstimationResult, TagObservation, TagPose, CameraPose
from .config import load_tag_layout, save_tag_layout, load_camera_poses, save_camera_poses

__all__ = [
    'MultiTagPoseEstimator',
    'PoseEstimationResult',
    'TagObservation',
    'TagPose',
    'CameraPose',
    'load_tag_layout',
    'save_tag_layout',
    'load_camera_poses',
    'save_camera_poses',
]
