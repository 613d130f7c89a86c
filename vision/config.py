"""
视觉静态配置：场地 AprilTag 布局与相机安装外参的保存/加载
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.config import load_config, save_config, APRILTAG_POSE_PATH, CAMERA_POSE_PATH
from core.logger import logger
from .localization import TagPose, CameraPose


@dataclass
class TagLayout:
    """场地 Tag 布局：tag_id -> world←tag"""
    name: str = ""
    tags: Dict[int, TagPose] = field(default_factory=dict)


@dataclass
class CameraMounts:
    """按相机序号排列的安装外参 car←cam"""
    cameras: List[CameraPose] = field(default_factory=list)


def load_tag_layout(path: str = APRILTAG_POSE_PATH) -> Dict[int, TagPose]:
    """加载 Tag 布局；文件缺失时返回空字典（此时视觉不会产生任何候选）"""
    layout: Optional[TagLayout] = load_config(path, TagLayout)
    if layout is None:
        logger.warning(f"[VisionConfig] 未能加载 Tag 布局，视觉定位不可用: {path}")
        return {}
    logger.info(f"[VisionConfig] 已加载场地 {layout.name or '未命名'} 的 {len(layout.tags)} 个 Tag")
    return dict(layout.tags)


def save_tag_layout(tags: Dict[int, TagPose], name: str = "", path: str = APRILTAG_POSE_PATH) -> bool:
    return save_config(path, TagLayout(name=name, tags=dict(tags)))


def load_camera_poses(path: str = CAMERA_POSE_PATH) -> List[CameraPose]:
    """加载相机外参列表（按相机序号对应）"""
    mounts: Optional[CameraMounts] = load_config(path, CameraMounts)
    if mounts is None:
        logger.warning(f"[VisionConfig] 未能加载相机外参: {path}")
        return []
    for i, cam in enumerate(mounts.cameras):
        logger.info(f"[VisionConfig] 相机 {i} 外参已加载: {cam}")
    return list(mounts.cameras)


def save_camera_poses(cameras: List[CameraPose], path: str = CAMERA_POSE_PATH) -> bool:
    return save_config(path, CameraMounts(cameras=list(cameras)))
