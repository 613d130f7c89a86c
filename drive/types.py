from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class WheelState:
    """单个舵轮模块的里程读数
    - distance_m: 驱动轮累计行驶距离（m），可正可负
    - angle: 转向角（弧度），连续量，不在这里处理回绕
    """
    distance_m: float = 0.0
    angle: float = 0.0


@dataclass(frozen=True, slots=True)
class ModuleState:
    """模块的速度目标/测量值（m/s, 弧度）"""
    speed: float = 0.0
    angle: float = 0.0


@dataclass(frozen=True, slots=True)
class ChassisSpeeds:
    """车体系速度：vx, vy (m/s)，omega (rad/s)"""
    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0


@dataclass(frozen=True, slots=True)
class OdometrySample:
    """
    采样线程某一时刻的快照：所有模块读数 + 陀螺仪航向（未连接时为 None）。
    timestamp 与视觉时间戳使用同一个单调时钟（秒）。
    """
    timestamp: float
    wheels: Tuple[WheelState, ...]
    gyro_yaw: Optional[float] = None


@dataclass
class DriveConfig:
    """
    底盘几何与限速配置
    - module_translations: 每个模块相对车体中心的 (x, y)，顺序 FL, FR, BL, BR；
      留空时按轮距 horizontal/vertical_wheels_margin_m 生成矩形布局
    """
    horizontal_wheels_margin_m: float = 0.6
    vertical_wheels_margin_m: float = 0.6
    module_translations: List[List[float]] = field(default_factory=list)
    max_module_velocity_mps: float = 4.5
    max_angular_velocity_radps: float = 10.0


@dataclass
class SamplerConfig:
    frequency_hz: float = 250.0
    # 单个控制周期内最多缓存的样本数，超出丢最旧的
    max_samples: int = 64
