"""
平面/空间刚体变换工具

公开 API:
- Pose2D, Twist2D
- se2: 场地平面位姿运算（含角度回绕、指数/对数映射、插值）
- se3: 4×4 齐次矩阵运算（相机外参、Tag 观测链）
"""
from .types import Pose2D, Twist2D, wrap_angle

__all__ = ["Pose2D", "Twist2D", "wrap_angle"]
