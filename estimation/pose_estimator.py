# estimation/pose_estimator.py
import math
from bisect import bisect_right
from collections import deque
from typing import Deque, List, Optional, Sequence, Tuple
import threading

import numpy as np

from core.debug_vars import set_debug_vars
from core.logger import logger
from drive import KinematicsConfigError, OdometrySample, OdometrySampler, SwerveKinematics, WheelState
from drive.types import DriveConfig
from geometry import Pose2D, Twist2D, wrap_angle
from geometry.se2 import angle_diff, pose_exp, pose_log
from vision.localization import PoseEstimationResult
from .pose_buffer import PoseBuffer
from .types import PoseEstimatorConfig, VisionUpdate

DEBUG_PREFIX = "PoseEstimator"

HEADING_GYRO = "gyro"
HEADING_ODOMETRY = "odometry"


class PoseEstimator:
    """
    里程计 + 陀螺仪 + 视觉的场地位姿融合（唯一的位姿状态持有者）。

    每个控制周期 periodic():
      1. 从采样器取出所有新样本（按采样顺序）
      2. 逐个样本：模块距离差分 -> 运动学正解 -> 航向（优先陀螺仪，断开时累加运动学转角）
         -> 在上一航向坐标系下积分得到新的里程计位姿，按采样时刻记入历史
      3. 处理本周期交付的视觉结果：修正作用在视觉时间戳 t 的历史位姿上，
         t 之后的里程计运动再叠加上去，当前位姿不会直接跳到视觉读数

    线程模型：所有 update/add/reset 只允许在控制循环线程调用；
    其他线程的视觉结果通过 submit_vision_result() 投递，periodic() 在周期边界统一处理。
    """

    def __init__(
        self,
        kinematics: SwerveKinematics,
        sampler: Optional[OdometrySampler] = None,
        cfg: Optional[PoseEstimatorConfig] = None,
        drive_cfg: Optional[DriveConfig] = None,
        initial_pose: Pose2D = Pose2D(),
        initial_wheels: Optional[Sequence[WheelState]] = None,
    ) -> None:
        if sampler is not None and sampler.num_modules != kinematics.num_modules:
            raise KinematicsConfigError(
                f"采样器模块数 {sampler.num_modules} 与运动学模块数 {kinematics.num_modules} 不一致")
        cfg = cfg if cfg is not None else PoseEstimatorConfig()
        drive_cfg = drive_cfg if drive_cfg is not None else DriveConfig()
        if len(cfg.state_std_devs) != 3:
            raise ValueError(f"state_std_devs 需要 3 个值 (x, y, yaw)，实际 {cfg.state_std_devs}")

        self.cfg = cfg
        self.drive_cfg = drive_cfg
        self._kinematics = kinematics
        self._sampler = sampler

        self._q = np.square(np.asarray(cfg.state_std_devs, dtype=float))

        # 每个模块一个槽位，只在 update_with_sample / reset_pose 中替换
        n = kinematics.num_modules
        self._last_wheels: List[WheelState] = [WheelState() for _ in range(n)]
        if initial_wheels is not None:
            self._last_wheels = self._checked_wheels(initial_wheels)

        # 陀螺仪对齐点：(对齐时的陀螺仪读数, 对应的场地航向)
        self._gyro_ref: Optional[Tuple[float, float]] = None
        self._last_gyro_yaw: Optional[float] = None
        self._heading_source: Optional[str] = None

        self._odometry_pose: Pose2D = initial_pose
        self._estimate: Pose2D = initial_pose
        self._buffer = PoseBuffer(cfg.history_seconds)
        self._vision_times: List[float] = []
        self._vision_updates: List[VisionUpdate] = []

        self._vision_inbox: Deque[PoseEstimationResult] = deque()
        self._inbox_lock = threading.Lock()

    # ---------- 对外只读 ----------
    @property
    def pose(self) -> Pose2D:
        return self._estimate

    def get_pose(self) -> Pose2D:
        return self._estimate

    @property
    def odometry_pose(self) -> Pose2D:
        """不含视觉修正的纯里程计位姿"""
        return self._odometry_pose

    @property
    def heading_source(self) -> Optional[str]:
        return self._heading_source

    @property
    def max_linear_velocity(self) -> float:
        return float(self.drive_cfg.max_module_velocity_mps)

    @property
    def max_angular_velocity(self) -> float:
        return float(self.drive_cfg.max_angular_velocity_radps)

    @property
    def kinematics(self) -> SwerveKinematics:
        return self._kinematics

    # ---------- 控制周期 ----------
    def periodic(self, vision_result: Optional[PoseEstimationResult] = None) -> Pose2D:
        """一个控制周期：先积分全部里程计样本，再处理视觉结果"""
        samples: List[OdometrySample] = []
        if self._sampler is not None:
            with self._sampler.locked():
                samples = self._sampler.drain()

        for sample in samples:
            self.update_with_sample(sample)

        for result in self._take_vision_inbox():
            self.add_vision_result(result)
        if vision_result is not None:
            self.add_vision_result(vision_result)

        set_debug_vars(DEBUG_PREFIX, {
            "Odometry/timeStampsLength": len(samples),
            "Odometry/Pose": self._odometry_pose.as_tuple(),
            "EstimatedPose": self._estimate.as_tuple(),
            "HeadingSource": self._heading_source,
        })
        return self._estimate

    def submit_vision_result(self, result: PoseEstimationResult) -> None:
        """视觉线程投递结果；下一次 periodic() 时才会被融合"""
        with self._inbox_lock:
            self._vision_inbox.append(result)

    def _take_vision_inbox(self) -> List[PoseEstimationResult]:
        with self._inbox_lock:
            out = list(self._vision_inbox)
            self._vision_inbox.clear()
        # 按采集时刻排序，保证历史修正按时间先后进行
        out.sort(key=lambda r: r.timestamp if r.timestamp is not None else math.inf)
        return out

    # ---------- 里程计 ----------
    def _checked_wheels(self, wheels: Sequence[WheelState]) -> List[WheelState]:
        if len(wheels) != self._kinematics.num_modules:
            raise KinematicsConfigError(
                f"样本模块数 {len(wheels)} 与运动学模块数 {self._kinematics.num_modules} 不一致")
        return list(wheels)

    def _resolve_heading(self, sample: OdometrySample, prev_yaw: float, twist: Twist2D) -> float:
        if sample.gyro_yaw is not None:
            gyro = float(sample.gyro_yaw)
            self._last_gyro_yaw = gyro
            if self._gyro_ref is None:
                # 首次拿到陀螺仪读数：以当前航向为准对齐，避免跳变
                self._gyro_ref = (gyro, prev_yaw)
            self._set_heading_source(HEADING_GYRO)
            gyro_ref, yaw_ref = self._gyro_ref
            # 读数未变时角差恰为 0，航向与对齐点逐位相同
            return wrap_angle(yaw_ref + angle_diff(gyro, gyro_ref))

        self._set_heading_source(HEADING_ODOMETRY)
        return wrap_angle(prev_yaw + twist.dtheta)

    def _set_heading_source(self, source: str) -> None:
        if source == self._heading_source:
            return
        if self._heading_source is not None:
            if source == HEADING_ODOMETRY:
                logger.warning("[PoseEstimator] 陀螺仪不可用，航向改用运动学累加")
            else:
                logger.info("[PoseEstimator] 陀螺仪恢复，航向改用陀螺仪")
        self._heading_source = source

    def update_with_sample(self, sample: OdometrySample) -> Pose2D:
        """积分一个里程计样本，返回融合后的当前位姿"""
        wheels = self._checked_wheels(sample.wheels)

        deltas = [
            WheelState(new.distance_m - old.distance_m, new.angle)
            for new, old in zip(wheels, self._last_wheels)
        ]
        self._last_wheels = wheels

        twist = self._kinematics.to_twist(deltas)
        prev = self._odometry_pose
        heading = self._resolve_heading(sample, prev.yaw, twist)

        # 平移在上一航向坐标系下解释，转角以解析出的航向为准
        step = Twist2D(twist.dx, twist.dy, angle_diff(heading, prev.yaw))
        moved = pose_exp(prev, step)
        self._odometry_pose = Pose2D(moved.x, moved.y, heading)

        self._buffer.add(sample.timestamp, self._odometry_pose)
        self._prune_vision_updates()
        self._estimate = self._compensate(self._odometry_pose)
        return self._estimate

    # ---------- 视觉 ----------
    def _kalman_gain(self, std_dev: Sequence[float]) -> np.ndarray:
        """每轴 K = q / (q + sqrt(q·r))；q=0 时完全不信视觉"""
        r = np.square(np.asarray(std_dev, dtype=float).reshape(3))
        k = np.zeros(3, dtype=float)
        for i in range(3):
            q = float(self._q[i])
            if q > 0.0:
                k[i] = q / (q + math.sqrt(q * float(r[i])))
        return k

    def _latest_update_before(self, timestamp: float) -> Optional[VisionUpdate]:
        i = bisect_right(self._vision_times, timestamp)
        return self._vision_updates[i - 1] if i > 0 else None

    def _compensate(self, odometry_pose: Pose2D) -> Pose2D:
        if not self._vision_updates:
            return odometry_pose
        return self._vision_updates[-1].compensate(odometry_pose)

    def _prune_vision_updates(self) -> None:
        """丢弃历史窗口外的修正，但保留窗口前最后一条作为基准"""
        oldest = self._buffer.oldest_timestamp
        if oldest is None or not self._vision_times:
            return
        i = bisect_right(self._vision_times, oldest) - 1
        if i > 0:
            del self._vision_times[:i]
            del self._vision_updates[:i]

    def sample_at(self, timestamp: float) -> Optional[Pose2D]:
        """历史时刻的融合位姿（超出历史范围时钳位到两端）"""
        odom = self._buffer.sample(timestamp)
        if odom is None:
            return None
        update = self._latest_update_before(timestamp)
        return update.compensate(odom) if update is not None else odom

    def add_vision_measurement(self, vision_pose: Pose2D, timestamp: float,
                               std_dev: Sequence[float]) -> bool:
        """
        融合一次带时间戳的视觉测量。
        - 时间戳早于历史窗口：钳位到最旧记录做尽力修正（记 warning）
        - 尚无任何里程计历史：忽略并返回 False
        """
        oldest, newest = self._buffer.oldest_timestamp, self._buffer.newest_timestamp
        if oldest is None or newest is None:
            logger.warning_throttled("pose_estimator.no_history", "[PoseEstimator] 尚无里程计历史，忽略视觉测量")
            return False

        t = float(timestamp)
        if t < oldest:
            logger.warning_throttled("pose_estimator.stale_vision", f"[PoseEstimator] 视觉测量过旧 ({newest - t:.3f}s 前)，按最旧历史 {newest - oldest:.3f}s 钳位修正")
            t = oldest
        elif t > newest:
            t = newest

        odom_t = self._buffer.sample(t)
        update_t = self._latest_update_before(t)
        estimate_t = update_t.compensate(odom_t) if update_t is not None else odom_t

        k = self._kalman_gain(std_dev)
        twist = pose_log(estimate_t, vision_pose)
        scaled = Twist2D(k[0] * twist.dx, k[1] * twist.dy, k[2] * twist.dtheta)
        corrected = pose_exp(estimate_t, scaled)

        # t 之后的旧修正作废，由本次修正 + 里程计重放取代
        i = bisect_right(self._vision_times, t)
        if i > 0 and self._vision_times[i - 1] == t:
            i -= 1
        del self._vision_times[i:]
        del self._vision_updates[i:]
        self._vision_times.append(t)
        self._vision_updates.append(VisionUpdate(corrected, odom_t))

        self._estimate = self._compensate(self._odometry_pose)
        return True

    def add_vision_result(self, result: PoseEstimationResult) -> bool:
        if result.timestamp is None:
            # 没有采集时刻时按“刚刚”处理
            newest = self._buffer.newest_timestamp
            if newest is None:
                logger.warning_throttled("pose_estimator.no_history", "[PoseEstimator] 尚无里程计历史，忽略视觉测量")
                return False
            return self.add_vision_measurement(result.pose, newest, result.std_dev)
        return self.add_vision_measurement(result.pose, result.timestamp, result.std_dev)

    # ---------- 重置 ----------
    def reset_pose(self, pose: Pose2D,
                   wheels: Optional[Sequence[WheelState]] = None,
                   gyro_yaw: Optional[float] = None) -> None:
        """
        强制设定当前位姿（比赛开始对位）。
        - wheels: 当前模块读数，作为新的差分基准；省略时取采样器里最新一帧（只作基准，不积分），
          没有采样器或队列为空时沿用最后一次读数
        - gyro_yaw: 当前陀螺仪读数；省略时同上取最新读数，从未读到过则等到第一次读数再对齐
        """
        if self._sampler is not None:
            # 队列里都是重置前的运动，丢弃
            with self._sampler.locked():
                queued = self._sampler.drain()
            if queued:
                newest = queued[-1]
                if wheels is None:
                    wheels = newest.wheels
                if newest.gyro_yaw is not None:
                    self._last_gyro_yaw = float(newest.gyro_yaw)
        if wheels is not None:
            self._last_wheels = self._checked_wheels(wheels)
        gyro = gyro_yaw if gyro_yaw is not None else self._last_gyro_yaw
        self._gyro_ref = (float(gyro), pose.yaw) if gyro is not None else None

        self._odometry_pose = pose
        self._estimate = pose
        self._buffer.clear()
        self._vision_times.clear()
        self._vision_updates.clear()
        with self._inbox_lock:
            self._vision_inbox.clear()
        logger.info(f"[PoseEstimator] 位姿已重置为 ({pose.x:.3f}, {pose.y:.3f}, {math.degrees(pose.yaw):.1f}°)")

    def last_wheel_states(self) -> Tuple[WheelState, ...]:
        return tuple(self._last_wheels)
