# drive/kinematics.py
import math
from typing import List, Sequence, Tuple

import numpy as np

from geometry import Twist2D
from .types import ChassisSpeeds, DriveConfig, ModuleState, WheelState


class KinematicsConfigError(ValueError):
    """底盘几何配置错误（模块数不匹配、缺少几何参数等），属于致命错误"""


class SwerveKinematics:
    """
    舵轮底盘运动学。

    逆解矩阵 M (2N×3) 把车体速度 [vx, vy, omega] 映射为每个模块的 [vx_i, vy_i]：
        [1, 0, -y_i]
        [0, 1,  x_i]
    正解用 M 的广义逆（最小二乘）：模块数多于 3 个自由度，单轮打滑/误差被平均掉。
    正解与逆解共用同一组几何参数。
    """

    def __init__(self, module_translations: Sequence[Sequence[float]]) -> None:
        arr = np.asarray(module_translations, dtype=float)
        if arr.ndim != 2 or arr.shape[1] != 2:
            raise KinematicsConfigError(f"模块安装位置必须是 N×2 数组，实际形状 {arr.shape}")
        if arr.shape[0] < 2:
            raise KinematicsConfigError(f"舵轮底盘至少需要 2 个模块，实际 {arr.shape[0]}")

        self._translations = arr
        self._inverse = self._build_inverse(arr, (0.0, 0.0))
        self._forward = np.linalg.pinv(self._inverse)
        self._last_cor: Tuple[float, float] = (0.0, 0.0)
        self._cor_inverse = self._inverse
        self._headings: List[float] = [0.0] * arr.shape[0]

    @classmethod
    def from_wheel_margins(cls, horizontal_m: float, vertical_m: float) -> "SwerveKinematics":
        """矩形四轮布局：FL, FR, BL, BR"""
        if horizontal_m <= 0 or vertical_m <= 0:
            raise KinematicsConfigError(f"轮距必须为正: horizontal={horizontal_m}, vertical={vertical_m}")
        hx, hy = horizontal_m / 2.0, vertical_m / 2.0
        return cls([(hx, hy), (hx, -hy), (-hx, hy), (-hx, -hy)])

    @classmethod
    def from_config(cls, cfg: DriveConfig) -> "SwerveKinematics":
        if cfg.module_translations:
            return cls(cfg.module_translations)
        return cls.from_wheel_margins(cfg.horizontal_wheels_margin_m, cfg.vertical_wheels_margin_m)

    @staticmethod
    def _build_inverse(translations: np.ndarray, cor: Tuple[float, float]) -> np.ndarray:
        n = translations.shape[0]
        M = np.zeros((2 * n, 3), dtype=float)
        for i, (x, y) in enumerate(translations):
            rx, ry = x - cor[0], y - cor[1]
            M[2 * i]     = [1.0, 0.0, -ry]
            M[2 * i + 1] = [0.0, 1.0,  rx]
        return M

    # ---------- 属性 ----------
    @property
    def num_modules(self) -> int:
        return int(self._translations.shape[0])

    @property
    def module_translations(self) -> np.ndarray:
        return self._translations.copy()

    def _check_count(self, n: int, what: str) -> None:
        if n != self.num_modules:
            raise KinematicsConfigError(f"{what} 数量 {n} 与运动学模块数 {self.num_modules} 不一致")

    # ---------- 逆解：车体速度 -> 模块目标 ----------
    def to_module_states(self, speeds: ChassisSpeeds,
                         center_of_rotation: Tuple[float, float] = (0.0, 0.0)) -> List[ModuleState]:
        """车体速度 -> 各模块 (speed, angle)；零速度时保持各模块上一次的朝向"""
        if speeds.vx == 0.0 and speeds.vy == 0.0 and speeds.omega == 0.0:
            return [ModuleState(0.0, h) for h in self._headings]

        cor = (float(center_of_rotation[0]), float(center_of_rotation[1]))
        if cor != self._last_cor:
            self._cor_inverse = self._build_inverse(self._translations, cor)
            self._last_cor = cor

        v = self._cor_inverse @ np.array([speeds.vx, speeds.vy, speeds.omega], dtype=float)
        states: List[ModuleState] = []
        for i in range(self.num_modules):
            vx, vy = float(v[2 * i]), float(v[2 * i + 1])
            angle = math.atan2(vy, vx)
            states.append(ModuleState(math.hypot(vx, vy), angle))
            self._headings[i] = angle
        return states

    def reset_headings(self, angles: Sequence[float]) -> None:
        """设定零速度指令时各模块保持的朝向（停止/锁定底盘）"""
        self._check_count(len(angles), "模块朝向")
        self._headings = [float(a) for a in angles]

    def x_formation_headings(self) -> List[float]:
        """X 字锁定：每个模块朝向其安装位置方向，车体抵抗推动"""
        return [math.atan2(float(y), float(x)) for x, y in self._translations]

    # ---------- 正解：模块 -> 车体运动 ----------
    def to_twist(self, wheel_deltas: Sequence[WheelState]) -> Twist2D:
        """模块位移增量（distance 为增量，angle 为绝对转向角）-> 车体系 Twist2D"""
        self._check_count(len(wheel_deltas), "模块位移增量")
        d = np.empty(2 * self.num_modules, dtype=float)
        for i, w in enumerate(wheel_deltas):
            d[2 * i]     = w.distance_m * math.cos(w.angle)
            d[2 * i + 1] = w.distance_m * math.sin(w.angle)
        dx, dy, dtheta = self._forward @ d
        return Twist2D(float(dx), float(dy), float(dtheta))

    def to_chassis_speeds(self, module_states: Sequence[ModuleState]) -> ChassisSpeeds:
        """测量的模块状态 -> 车体速度（最小二乘）"""
        self._check_count(len(module_states), "模块状态")
        v = np.empty(2 * self.num_modules, dtype=float)
        for i, s in enumerate(module_states):
            v[2 * i]     = s.speed * math.cos(s.angle)
            v[2 * i + 1] = s.speed * math.sin(s.angle)
        vx, vy, omega = self._forward @ v
        return ChassisSpeeds(float(vx), float(vy), float(omega))


def desaturate_wheel_speeds(states: Sequence[ModuleState], max_speed: float) -> List[ModuleState]:
    """
    任一模块速度超过 max_speed 时，所有模块按同一比例缩小；
    方向和模块间的速度比例保持不变。
    """
    if max_speed <= 0:
        raise KinematicsConfigError(f"最大模块速度必须为正: {max_speed}")
    peak = max((abs(s.speed) for s in states), default=0.0)
    if peak <= max_speed:
        return list(states)
    k = max_speed / peak
    return [ModuleState(s.speed * k, s.angle) for s in states]
