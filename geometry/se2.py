# geometry/se2.py
import math
import numpy as np

from .types import Pose2D, Twist2D, wrap_angle

ArrayLike = np.ndarray

# 小角度阈值：低于此值用泰勒展开，避免 sin(x)/x 数值抖动
_SMALL_ANGLE = 1e-9


def angle_diff(a: float, b: float) -> float:
    """最短有符号角差 a - b，结果在 (-pi, pi]"""
    return wrap_angle(a - b)


def _as_xy(t) -> np.ndarray:
    """确保平移是形状 (2,) 的 float 向量。"""
    return np.asarray(t, dtype=float).reshape(2)


def to_homogeneous_2d(yaw: float, t: ArrayLike) -> ArrayLike:
    """构造 3×3 二维齐次变换矩阵 T = [R t; 0 0 1]（A←B）"""
    c, s = math.cos(yaw), math.sin(yaw)
    T = np.eye(3, dtype=float)
    T[0, 0] = c;  T[0, 1] = -s
    T[1, 0] = s;  T[1, 1] =  c
    T[0:2, 2] = _as_xy(t)
    return T


def invert_homogeneous_2d(T: ArrayLike) -> ArrayLike:
    """计算 3×3 二维齐次矩阵的逆"""
    T = np.asarray(T, dtype=float)
    R = T[:2, :2]
    t = T[:2, 2]
    Tinv = np.eye(3, dtype=float)
    Rt = R.T
    Tinv[:2, :2] = Rt
    Tinv[:2, 2] = -Rt @ t
    return Tinv


def mat2d_to_yaw(R: ArrayLike) -> float:
    """从二维旋转矩阵中提取 yaw（弧度）"""
    R = np.asarray(R, dtype=float)
    return float(math.atan2(R[1, 0], R[0, 0]))


def from_pose(pose: Pose2D) -> ArrayLike:
    """Pose2D -> 3×3 齐次矩阵"""
    return to_homogeneous_2d(pose.yaw, np.array([pose.x, pose.y], dtype=float))


def to_pose(T: ArrayLike) -> Pose2D:
    """3×3 齐次矩阵 -> Pose2D"""
    T = np.asarray(T, dtype=float)
    return Pose2D(float(T[0, 2]), float(T[1, 2]), mat2d_to_yaw(T[:2, :2]))


def transform_by(pose: Pose2D, delta: Pose2D) -> Pose2D:
    """在 pose 自身坐标系下叠加相对位姿 delta：world←a · a←b"""
    return to_pose(from_pose(pose) @ from_pose(delta))


def relative_to(pose: Pose2D, origin: Pose2D) -> Pose2D:
    """pose 在 origin 坐标系下的表示：inv(world←origin) · world←pose"""
    return to_pose(invert_homogeneous_2d(from_pose(origin)) @ from_pose(pose))


def pose_exp(pose: Pose2D, twist: Twist2D) -> Pose2D:
    """
    SE(2) 指数映射：沿恒定曲率圆弧把 twist 作用到 pose 上。
    twist 的平移分量按“起始航向”坐标系解释，dtheta 很小时退化为直线平移。
    """
    dx, dy, dtheta = twist.dx, twist.dy, twist.dtheta
    if dx == 0.0 and dy == 0.0 and dtheta == 0.0:
        return pose
    sin_t, cos_t = math.sin(dtheta), math.cos(dtheta)
    if abs(dtheta) < _SMALL_ANGLE:
        s = 1.0 - dtheta * dtheta / 6.0
        c = 0.5 * dtheta
    else:
        s = sin_t / dtheta
        c = (1.0 - cos_t) / dtheta
    delta = Pose2D(dx * s - dy * c, dx * c + dy * s, dtheta)
    return transform_by(pose, delta)


def pose_log(start: Pose2D, end: Pose2D) -> Twist2D:
    """SE(2) 对数映射：pose_exp(start, pose_log(start, end)) == end"""
    rel = relative_to(end, start)
    dtheta = rel.yaw
    half = 0.5 * dtheta
    cos_minus_one = math.cos(dtheta) - 1.0
    if abs(cos_minus_one) < _SMALL_ANGLE:
        half_by_tan = 1.0 - dtheta * dtheta / 12.0
    else:
        half_by_tan = -(half * math.sin(dtheta)) / cos_minus_one
    # 平移先旋转 atan2(-half, half_by_tan)，再乘模长
    phi = math.atan2(-half, half_by_tan)
    scale = math.hypot(half_by_tan, half)
    c, s = math.cos(phi), math.sin(phi)
    tx = (rel.x * c - rel.y * s) * scale
    ty = (rel.x * s + rel.y * c) * scale
    return Twist2D(tx, ty, dtheta)


def interpolate(a: Pose2D, b: Pose2D, t: float) -> Pose2D:
    """沿 a→b 的测地线插值，t 裁剪到 [0, 1]"""
    if t <= 0.0:
        return a
    if t >= 1.0:
        return b
    return pose_exp(a, pose_log(a, b).scaled(t))

