# vision/localization/filters.py
"""
视觉候选剔除策略

每个策略都是一个 CandidateFilter：名字（用于诊断显示）+ 纯函数 predicate(candidate) -> bool。
策略之间可以用 all_of 组合，新策略只需写一个函数，不需要继承。
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence

from .types import PoseCandidate, VisionEstimatorConfig


@dataclass(frozen=True)
class CandidateFilter:
    name: str
    predicate: Callable[[PoseCandidate], bool]

    def __call__(self, candidate: PoseCandidate) -> bool:
        return bool(self.predicate(candidate))


def accept_all() -> CandidateFilter:
    return CandidateFilter("accept_all", lambda c: True)


def height_filter(max_abs_z: float) -> CandidateFilter:
    """底盘在地面上：反推出的车体高度过大说明观测有误"""
    return CandidateFilter(f"height<={max_abs_z:.2f}m", lambda c: abs(c.z) <= max_abs_z)


def tilt_filter(max_tilt_rad: float) -> CandidateFilter:
    return CandidateFilter(f"tilt<={max_tilt_rad:.2f}rad", lambda c: c.tilt <= max_tilt_rad)


def pose_err_filter(max_pose_err: float) -> CandidateFilter:
    """剔除歧义度/重投影误差过大的观测"""
    return CandidateFilter(f"pose_err<={max_pose_err:.2f}", lambda c: c.pose_err <= max_pose_err)


def field_bounds_filter(length_m: float, width_m: float, margin_m: float = 0.0) -> CandidateFilter:
    """车体必须落在场地范围内（含 margin 容差）"""
    def _inside(c: PoseCandidate) -> bool:
        return (-margin_m <= c.pose.x <= length_m + margin_m
                and -margin_m <= c.pose.y <= width_m + margin_m)
    return CandidateFilter(f"field[{length_m:.2f}x{width_m:.2f}]", _inside)


def all_of(*filters: CandidateFilter) -> CandidateFilter:
    """全部通过才接受；没有子策略时等价于 accept_all"""
    if not filters:
        return accept_all()
    name = " & ".join(f.name for f in filters)
    return CandidateFilter(name, lambda c: all(f(c) for f in filters))


_FACTORIES: Dict[str, Callable[[VisionEstimatorConfig], CandidateFilter]] = {
    "accept_all": lambda cfg: accept_all(),
    "height": lambda cfg: height_filter(cfg.max_height_m),
    "tilt": lambda cfg: tilt_filter(cfg.max_tilt_rad),
    "pose_err": lambda cfg: pose_err_filter(cfg.max_pose_err),
    "field_bounds": lambda cfg: field_bounds_filter(cfg.field_length_m, cfg.field_width_m, cfg.field_margin_m),
}


def available_filters() -> List[str]:
    return sorted(_FACTORIES)


def filter_from_config(cfg: VisionEstimatorConfig) -> CandidateFilter:
    """按配置里的策略名列表组合剔除策略；未知名字属于配置错误"""
    return build_filter(cfg.filter_names, cfg)


def build_filter(names: Sequence[str], cfg: VisionEstimatorConfig) -> CandidateFilter:
    parts: List[CandidateFilter] = []
    for n in names:
        factory = _FACTORIES.get(n)
        if factory is None:
            raise ValueError(f"未知的视觉剔除策略: {n}（可选: {', '.join(available_filters())}）")
        parts.append(factory(cfg))
    if len(parts) == 1:
        return parts[0]
    return all_of(*parts)
