# estimation/pose_buffer.py
from bisect import bisect_left, bisect_right
from typing import List, Optional, Tuple

from geometry import Pose2D
from geometry.se2 import interpolate


class PoseBuffer:
    """
    按时间戳排序的位姿历史（只保留最近 history_seconds 秒）。

    sample(t):
      - t 早于最旧记录 -> 返回最旧记录（钳位）
      - t 晚于最新记录 -> 返回最新记录
      - 其间 -> 相邻两条记录之间沿测地线插值
    """

    def __init__(self, history_seconds: float = 1.5) -> None:
        if history_seconds <= 0:
            raise ValueError(f"history_seconds 必须为正: {history_seconds}")
        self.history_seconds = float(history_seconds)
        self._times: List[float] = []
        self._poses: List[Pose2D] = []

    def __len__(self) -> int:
        return len(self._times)

    def clear(self) -> None:
        self._times.clear()
        self._poses.clear()

    def add(self, timestamp: float, pose: Pose2D) -> None:
        t = float(timestamp)
        if self._times and t <= self._times[-1]:
            # 乱序或重复时间戳：覆盖/插入到正确位置
            i = bisect_left(self._times, t)
            if i < len(self._times) and self._times[i] == t:
                self._poses[i] = pose
            else:
                self._times.insert(i, t)
                self._poses.insert(i, pose)
        else:
            self._times.append(t)
            self._poses.append(pose)
        self._prune()

    def _prune(self) -> None:
        cutoff = self._times[-1] - self.history_seconds
        n = bisect_left(self._times, cutoff)
        # 至少保留一条
        n = min(n, len(self._times) - 1)
        if n > 0:
            del self._times[:n]
            del self._poses[:n]

    @property
    def oldest_timestamp(self) -> Optional[float]:
        return self._times[0] if self._times else None

    @property
    def newest_timestamp(self) -> Optional[float]:
        return self._times[-1] if self._times else None

    @property
    def latest(self) -> Optional[Tuple[float, Pose2D]]:
        return (self._times[-1], self._poses[-1]) if self._times else None

    def sample(self, timestamp: float) -> Optional[Pose2D]:
        if not self._times:
            return None
        t = float(timestamp)
        if t <= self._times[0]:
            return self._poses[0]
        if t >= self._times[-1]:
            return self._poses[-1]
        hi = bisect_right(self._times, t)
        lo = hi - 1
        t0, t1 = self._times[lo], self._times[hi]
        if t == t0:
            return self._poses[lo]
        return interpolate(self._poses[lo], self._poses[hi], (t - t0) / (t1 - t0))
