# estimation/runtime.py
"""
定位系统单例管理与启动逻辑。
提供统一接口来初始化、获取、重置 LocalizationSystem 实例，并管理其生命周期。
"""

from typing import Dict, List, Optional, Sequence
from threading import Lock

from core.config import load_config, save_config, LOCALIZATION_CONFIG_PATH
from core.logger import logger
from drive import KinematicsConfigError, OdometrySampler, SwerveKinematics
from drive.odometry_sampler import GyroReader, ModuleReader
from geometry import Pose2D
from vision.config import load_camera_poses, load_tag_layout
from vision.localization import CameraPose, MultiTagPoseEstimator, PoseEstimationResult, TagPose
from .pose_estimator import PoseEstimator
from .types import LocalizationConfig


class LocalizationSystem:
    """把采样器、运动学、视觉估计器和位姿融合组装在一起的控制循环入口"""

    def __init__(
        self,
        cfg: LocalizationConfig,
        module_readers: Sequence[ModuleReader],
        gyro_reader: Optional[GyroReader] = None,
        tag_map: Optional[Dict[int, TagPose]] = None,
        camera_poses: Optional[List[CameraPose]] = None,
    ) -> None:
        self.cfg = cfg
        self.kinematics = SwerveKinematics.from_config(cfg.drive)
        if len(module_readers) != self.kinematics.num_modules:
            raise KinematicsConfigError(
                f"模块读数回调数量 {len(module_readers)} 与底盘模块数 {self.kinematics.num_modules} 不一致")
        self.sampler = OdometrySampler(module_readers, gyro_reader, cfg.sampler)
        self.pose_estimator = PoseEstimator(
            self.kinematics, self.sampler, cfg.estimator, cfg.drive)

        tags = tag_map if tag_map is not None else load_tag_layout()
        cams = camera_poses if camera_poses is not None else load_camera_poses()
        self.vision: Optional[MultiTagPoseEstimator] = None
        if cams:
            self.vision = MultiTagPoseEstimator(tags, cams, cfg=cfg.vision)
        else:
            logger.warning("[LocalizationSystem] 没有相机外参，仅使用里程计定位")

    def start(self) -> None:
        self.sampler.start()

    def close(self) -> None:
        self.sampler.stop()
        if self.vision is not None:
            self.vision.close()

    def step(
        self,
        observations: Optional[Sequence[Optional[Sequence[object]]]] = None,
        capture_timestamp: Optional[float] = None,
    ) -> Pose2D:
        """
        一个控制周期：积分里程计，再融合本周期完成的视觉采集（若有）。
        视觉估计在里程计积分之后进行，诊断用的 current_pose 取积分后的位姿。
        """
        pose = self.pose_estimator.periodic()
        if observations is None or self.vision is None:
            return pose
        result: Optional[PoseEstimationResult] = self.vision.estimate(
            observations, current_pose=pose, timestamp=capture_timestamp)
        if result is not None:
            self.pose_estimator.add_vision_result(result)
        return self.pose_estimator.pose

    def reset_pose(self, pose: Pose2D) -> None:
        # 队列里的旧样本由 PoseEstimator 丢弃，差分基准取最新读数
        self.pose_estimator.reset_pose(pose)

    def get_config(self) -> LocalizationConfig:
        return self.cfg


# 全局变量：保存单例
_ls: Optional[LocalizationSystem] = None
_lock = Lock()


def is_localization_initialized() -> bool:
    with _lock:
        return _ls is not None


def get_localization() -> LocalizationSystem:
    """获取当前单例；未初始化时抛 RuntimeError"""
    with _lock:
        if _ls is None:
            raise RuntimeError("LocalizationSystem 尚未初始化")
        return _ls


def init_localization(
    module_readers: Sequence[ModuleReader],
    gyro_reader: Optional[GyroReader] = None,
    cfg: Optional[LocalizationConfig] = None,
    tag_map: Optional[Dict[int, TagPose]] = None,
    camera_poses: Optional[List[CameraPose]] = None,
) -> LocalizationSystem:
    """
    初始化 LocalizationSystem 并加载配置；已存在时直接返回已有实例。
    cfg 省略时从 LOCALIZATION_CONFIG_PATH 加载，加载失败使用默认配置。
    """
    global _ls
    with _lock:
        if _ls is not None:
            logger.info("[LocalizationSystem] 已存在实例，使用现有实例")
            return _ls
        if cfg is None:
            cfg = load_config(LOCALIZATION_CONFIG_PATH, LocalizationConfig)
            if cfg is None:
                logger.warning("未能加载定位配置，使用默认配置")
                cfg = LocalizationConfig()
            else:
                logger.info("已加载定位配置")
        _ls = LocalizationSystem(cfg, module_readers, gyro_reader, tag_map, camera_poses)
        logger.info(f"[LocalizationSystem] 已初始化实例，{_ls.kinematics.num_modules} 个模块")
        return _ls


def reset_localization() -> None:
    """销毁当前实例；下一次 init_localization() 会重新创建"""
    global _ls
    old: Optional[LocalizationSystem] = None
    with _lock:
        if _ls is not None:
            old = _ls
            _ls = None
    # 在锁外停止线程，避免死锁
    if old is not None:
        old.close()


def save_localization_config() -> bool:
    if not is_localization_initialized():
        logger.error("LocalizationSystem 未初始化，无法保存配置")
        return False
    return save_config(LOCALIZATION_CONFIG_PATH, get_localization().get_config())
