# vision/localization/multi_tag_estimator.py
import concurrent.futures as futures
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from core.debug_vars import set_debug_vars
from core.logger import logger
from geometry import Pose2D
from geometry.se2 import angle_diff
from geometry.se3 import (
    from_xyzrpy, inv_se3, project_to_so3, se3, se3_from_pose2d, se3_to_pose2d, to_R, T_to_xyzrpy,
)
from .filters import CandidateFilter, filter_from_config
from .types import CameraPose, PoseCandidate, PoseEstimationResult, TagPose, VisionEstimatorConfig

DEBUG_PREFIX = "AprilTags/Filtering"


def fuse_pose_candidates(
    poses: Sequence[Pose2D],
    cfg: VisionEstimatorConfig,
) -> Optional[Tuple[Pose2D, np.ndarray]]:
    """
    融合通过剔除的候选位姿：
      - 0 个：None（本周期没有可用视觉）
      - 1 个：原样返回，标准差取配置里的单观测常数
      - ≥2 个：x/y 取算术平均，yaw 取圆周平均（正余弦累加），
        标准差取样本标准差（yaw 偏差按最短角差计算）
    """
    n = len(poses)
    if n == 0:
        return None
    if n == 1:
        t = float(cfg.single_observation_translation_std)
        return poses[0], np.array([t, t, float(cfg.single_observation_rotation_std)], dtype=float)

    xs = np.array([p.x for p in poses], dtype=float)
    ys = np.array([p.y for p in poses], dtype=float)
    yaws = np.array([p.yaw for p in poses], dtype=float)

    yaw_mean = math.atan2(float(np.sin(yaws).sum()), float(np.cos(yaws).sum()))
    yaw_dev = np.array([angle_diff(float(a), yaw_mean) for a in yaws], dtype=float)

    pose = Pose2D(float(xs.mean()), float(ys.mean()), yaw_mean)
    std = np.array([
        float(np.std(xs, ddof=1)),
        float(np.std(ys, ddof=1)),
        float(np.std(yaw_dev, ddof=1)),
    ], dtype=float)
    return pose, std


class MultiTagPoseEstimator:
    """
    多相机 AprilTag 车体位姿估计（无状态）。

    计算链（每个观测一个候选）：
        world←car = world←tag · (cam←tag)^{-1} · (car←cam)^{-1}
    全部在 SE(3) 中完成，最后才投到地面取 (x, y, yaw)，相机俯仰/侧倾由观测本身的 R 吸收。
    候选先经过 CandidateFilter，再做统计融合；current_pose 只用来推算诊断显示的 Tag 位置，
    不参与估计。
    """

    # ---------- lifecycle ----------

    def __init__(
        self,
        tag_map: Dict[int, TagPose],
        camera_poses: List[CameraPose],
        candidate_filter: Optional[CandidateFilter] = None,
        cfg: Optional[VisionEstimatorConfig] = None,
    ) -> None:
        if not camera_poses:
            raise ValueError("至少需要一个相机外参")
        if cfg is None:
            cfg = VisionEstimatorConfig()
        self.cfg = cfg
        # JSON 来源的布局键可能是字符串，统一成 int
        self.tag_map: Dict[int, TagPose] = {int(k): t for k, t in tag_map.items()}
        self.camera_poses: List[CameraPose] = list(camera_poses)
        self.candidate_filter: CandidateFilter = (
            candidate_filter if candidate_filter is not None else filter_from_config(cfg)
        )

        # 预计算：car←cam 与 cam←car，外参不变时复用
        self._T_car_cam_list: List[np.ndarray] = []
        self._T_cam_car_list: List[np.ndarray] = []
        for cam in self.camera_poses:
            T_car_cam = from_xyzrpy(cam.x, cam.y, cam.z, cam.roll, cam.pitch, cam.yaw)
            self._T_car_cam_list.append(T_car_cam)
            self._T_cam_car_list.append(inv_se3(T_car_cam))

        self._T_world_tag: Dict[int, np.ndarray] = {
            k: from_xyzrpy(t.x, t.y, t.z, t.roll, t.pitch, t.yaw) for k, t in self.tag_map.items()
        }

        self._executor: Optional[futures.ThreadPoolExecutor] = None
        if cfg.parallel_cameras and len(self.camera_poses) > 1:
            self._executor = futures.ThreadPoolExecutor(
                max_workers=len(self.camera_poses), thread_name_prefix="tag-est")

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    @property
    def num_cameras(self) -> int:
        return len(self.camera_poses)

    # ---------- helpers (pure) ----------

    @staticmethod
    def _extract_det_fields(det) -> Tuple[Optional[int], Optional[np.ndarray], Optional[np.ndarray], float]:
        """兼容 TagObservation 与 pyapriltags.Detection：tag_id / pose_R / pose_t / pose_err"""
        tag_id = getattr(det, "tag_id", None)
        R = getattr(det, "pose_R", None)
        tvec = getattr(det, "pose_t", None)
        err = getattr(det, "pose_err", None)
        return tag_id, R, tvec, float(err) if err is not None else 0.0

    def _camera_candidates(
        self, cam_idx: int, dets: Optional[Sequence[object]], current_pose: Optional[Pose2D]
    ) -> List[PoseCandidate]:
        """单相机的全部观测 -> 候选列表；未知 Tag、缺少位姿的观测直接跳过"""
        if not dets:
            return []

        T_car_cam = self._T_car_cam_list[cam_idx]
        T_cam_car = self._T_cam_car_list[cam_idx]
        T_world_car_odom = se3_from_pose2d(current_pose) if current_pose is not None else None

        results: List[PoseCandidate] = []
        for det in dets:
            tag_id, R_or_rvec, tvec, pose_err = self._extract_det_fields(det)
            if tag_id is None:
                continue

            T_world_tag = self._T_world_tag.get(int(tag_id))
            if T_world_tag is None:
                logger.debug(f"[MultiTagPoseEstimator] 相机 {cam_idx} 看到未知 Tag {tag_id}，忽略")
                continue

            if R_or_rvec is None or tvec is None:
                logger.debug(f"[MultiTagPoseEstimator] 相机 {cam_idx} 的 Tag {tag_id} 缺少位姿，忽略")
                continue

            # cam ← tag
            R_ct = project_to_so3(to_R(R_or_rvec))
            t_ct = np.asarray(tvec, dtype=float).reshape(3)
            if not np.isfinite(t_ct).all():
                continue
            T_cam_tag = se3(R_ct, t_ct)

            # world ← car = world←tag · tag←cam · cam←car
            T_world_car = T_world_tag @ inv_se3(T_cam_tag) @ T_cam_car

            observed = None
            if T_world_car_odom is not None:
                observed = T_world_car_odom @ T_car_cam @ T_cam_tag

            results.append(PoseCandidate(
                camera_index=cam_idx,
                tag_id=int(tag_id),
                T_world_car=T_world_car,
                pose=se3_to_pose2d(T_world_car),
                distance_m=float(np.linalg.norm(t_ct)),
                pose_err=pose_err,
                T_world_tag_observed=observed,
            ))
        return results

    # ---------- public API ----------

    def collect_candidates(
        self,
        observations: Sequence[Optional[Sequence[object]]],
        current_pose: Optional[Pose2D] = None,
    ) -> List[PoseCandidate]:
        """按相机顺序收集所有候选（可并行，返回前全部完成）"""
        if len(observations) != self.num_cameras:
            raise ValueError(
                f"相机观测列表长度 {len(observations)} 与相机外参数量 {self.num_cameras} 不一致")

        if self._executor is not None:
            jobs = [self._executor.submit(self._camera_candidates, i, dets, current_pose)
                    for i, dets in enumerate(observations)]
            per_cam = [job.result() for job in jobs]
        else:
            per_cam = [self._camera_candidates(i, dets, current_pose) for i, dets in enumerate(observations)]

        return [c for cands in per_cam for c in cands]

    def estimate(
        self,
        observations: Sequence[Optional[Sequence[object]]],
        current_pose: Optional[Pose2D] = None,
        timestamp: Optional[float] = None,
    ) -> Optional[PoseEstimationResult]:
        """
        融合一次采集中所有相机的观测：
          observations: 按相机序号对齐的观测列表（缺测可为 None 或空列表）
          current_pose: 当前里程计位姿，仅用于诊断
          timestamp: 图像采集时刻，原样带到结果里
        返回 PoseEstimationResult，没有有效候选时返回 None
        """
        candidates = self.collect_candidates(observations, current_pose)
        accepted = [c for c in candidates if self.candidate_filter(c)]

        fused = fuse_pose_candidates([c.pose for c in accepted], self.cfg)
        result = None
        if fused is not None:
            pose, std = fused
            result = PoseEstimationResult(pose=pose, std_dev=std, tag_count=len(accepted), timestamp=timestamp)

        self._publish_diagnostics(candidates, accepted, result)
        if candidates and not accepted:
            logger.debug(f"[MultiTagPoseEstimator] {len(candidates)} 个候选全部被 {self.candidate_filter.name} 剔除")
        return result

    # ---------- 诊断 ----------

    def _publish_diagnostics(
        self,
        candidates: List[PoseCandidate],
        accepted: List[PoseCandidate],
        result: Optional[PoseEstimationResult],
    ) -> None:
        visible = [self.tag_map[c.tag_id] for c in candidates]
        set_debug_vars(DEBUG_PREFIX, {
            "CurrentFilterImplementation": self.candidate_filter.name,
            "RobotPose3dsResults": [T_to_xyzrpy(c.T_world_car) for c in candidates],
            "RobotPose2dObservationsFiltered": [c.pose.as_tuple() for c in accepted],
            "RejectedCount": len(candidates) - len(accepted),
            "VisibleFieldTargets": visible,
            "AprilTagsObservedPositions/AprilTag ID": [c.tag_id for c in candidates],
            "AprilTagsObservedPositions": [
                T_to_xyzrpy(c.T_world_tag_observed) for c in candidates if c.T_world_tag_observed is not None
            ],
            "FusedPose": result.pose.as_tuple() if result is not None else None,
            "StandardError": result.std_tuple() if result is not None else None,
        })
