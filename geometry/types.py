import math
from dataclasses import dataclass


def wrap_angle(a: float) -> float:
    """把角度回绕到 (-pi, pi]"""
    if -math.pi < a <= math.pi:
        return a
    w = math.atan2(math.sin(a), math.cos(a))
    # atan2 在 -pi 处给出 -pi，统一成 +pi
    return math.pi if w <= -math.pi else w


@dataclass(frozen=True, slots=True)
class Pose2D:
    """场地坐标系下的车体二维位姿（x, y, yaw）
    - x, y: 平移（m）
    - yaw: 航向角（弧度），构造时回绕到 (-pi, pi]
    表示 T_world_car : world ← car
    """
    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "yaw", wrap_angle(float(self.yaw)))

    def as_tuple(self):
        return self.x, self.y, self.yaw


@dataclass(frozen=True, slots=True)
class Twist2D:
    """短时间步内的平面刚体运动（车体系下 dx, dy 与转角 dtheta）"""
    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def scaled(self, k: float) -> "Twist2D":
        return Twist2D(self.dx * k, self.dy * k, self.dtheta * k)
