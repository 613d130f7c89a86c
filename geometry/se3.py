# geometry/se3.py
"""
三维刚体变换：统一用 4×4 齐次矩阵 (numpy) 表示，命名约定 T_a_b 表示 a ← b。
欧拉角一律为 ZYX 顺序：R = Rz(yaw) · Ry(pitch) · Rx(roll)。
"""
import math
from typing import Tuple

import cv2
import numpy as np

from .types import Pose2D

# |pitch| 距 ±90° 小于该值时视为万向锁
_GIMBAL_EPS = 1e-6


def rpy_to_R(roll: float, pitch: float, yaw: float) -> np.ndarray:
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    # Rz·Ry·Rx 展开
    return np.array([
        [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
        [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
        [-sp,     cp * sr,                cp * cr],
    ], dtype=float)


def R_to_rpy_zyx(R: np.ndarray) -> Tuple[float, float, float]:
    """返回 (roll, pitch, yaw)；万向锁时 roll 记 0，转角全部归给 yaw"""
    R = np.asarray(R, dtype=float)
    pitch = math.asin(float(np.clip(-R[2, 0], -1.0, 1.0)))
    if math.pi / 2 - abs(pitch) < _GIMBAL_EPS:
        return 0.0, pitch, math.atan2(-R[0, 1], R[1, 1])
    return math.atan2(R[2, 1], R[2, 2]), pitch, math.atan2(R[1, 0], R[0, 0])


def project_to_so3(R: np.ndarray) -> np.ndarray:
    """最近的旋转矩阵（SVD 正交化，保证 det=+1），吸收检测器给出的 R 的数值误差"""
    U, _, Vt = np.linalg.svd(np.asarray(R, dtype=float))
    D = np.diag([1.0, 1.0, np.sign(np.linalg.det(U @ Vt)) or 1.0])
    return U @ D @ Vt


def to_R(rotation) -> np.ndarray:
    """3×3 旋转矩阵原样返回；3 元素 Rodrigues 向量经 cv2.Rodrigues 转换"""
    if rotation is None:
        raise ValueError("缺少旋转量")
    arr = np.asarray(rotation, dtype=float)
    if arr.shape == (3, 3):
        return arr
    if arr.size == 3:
        R, _ = cv2.Rodrigues(arr.reshape(3, 1))
        return R
    raise ValueError(f"旋转量形状无效: {arr.shape}（需要 3×3 矩阵或 3 元素 Rodrigues 向量）")


def se3(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4, dtype=float)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=float).reshape(3)
    return T


def inv_se3(T: np.ndarray) -> np.ndarray:
    """刚体变换的解析逆：(R, t)^{-1} = (Rᵀ, -Rᵀt)"""
    Rt = T[:3, :3].T
    return se3(Rt, -Rt @ T[:3, 3])


def from_xyzrpy(x: float, y: float, z: float,
                roll: float, pitch: float, yaw: float) -> np.ndarray:
    return se3(rpy_to_R(roll, pitch, yaw), (x, y, z))


def T_to_xyzrpy(T: np.ndarray) -> Tuple[float, float, float, float, float, float]:
    roll, pitch, yaw = R_to_rpy_zyx(T[:3, :3])
    x, y, z = (float(v) for v in T[:3, 3])
    return x, y, z, float(roll), float(pitch), float(yaw)


def se3_from_pose2d(pose: Pose2D) -> np.ndarray:
    """地面位姿抬升为 z=0、roll=pitch=0 的 4×4 矩阵"""
    return from_xyzrpy(pose.x, pose.y, 0.0, 0.0, 0.0, pose.yaw)


def se3_to_pose2d(T: np.ndarray) -> Pose2D:
    """world ← X 投到地面：取平移的 x, y 与 X 系 x 轴在地面上的朝向"""
    return Pose2D(float(T[0, 3]), float(T[1, 3]), math.atan2(T[1, 0], T[0, 0]))
