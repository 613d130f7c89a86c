# estimation/__init__.py

from .types import LocalizationConfig, PoseEstimatorConfig, VisionUpdate
from .pose_buffer import PoseBuffer
from .pose_estimator import PoseEstimator
from .runtime import (
    LocalizationSystem, is_localization_initialized, init_localization,
    get_localization, reset_localization, save_localization_config,
)

__all__ = [
    'LocalizationConfig',
    'PoseEstimatorConfig',
    'VisionUpdate',
    'PoseBuffer',
    'PoseEstimator',
    'LocalizationSystem',
    'is_localization_initialized',
    'init_localization',
    'get_localization',
    'reset_localization',
    'save_localization_config',
]
