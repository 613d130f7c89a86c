from .config_manager import load_config, save_config, config_from_dict
from ..paths import (
    ASSETS_DIR, CONFIG_DIR,
    APRILTAG_POSE_PATH,
    CAMERA_POSE_PATH,
    LOCALIZATION_CONFIG_PATH,
)

__all__ = ["load_config", "save_config", "config_from_dict",
           "LOCALIZATION_CONFIG_PATH", "CAMERA_POSE_PATH",
           "ASSETS_DIR", "CONFIG_DIR", "APRILTAG_POSE_PATH"]
