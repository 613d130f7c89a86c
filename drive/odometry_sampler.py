# drive/odometry_sampler.py
from collections import deque
from contextlib import contextmanager
from typing import Callable, Deque, Iterator, List, Optional, Sequence
import threading
import time

from core.logger import logger
from .types import OdometrySample, SamplerConfig, WheelState

ModuleReader = Callable[[], WheelState]
# 陀螺仪未连接时返回 None
GyroReader = Callable[[], Optional[float]]


class OdometrySampler:
    """
    高频里程计采样器（独立于主控制循环）
    - start()/stop(): 后台线程以固定频率调用 capture_once()
    - capture_once(): 读取所有模块 + 陀螺仪，生成一个不可变的 OdometrySample
    - drain(): 主循环每周期调用一次，拷贝并清空队列（短临界区）
    - lock()/unlock()/locked(): 包住一次完整的读取过程，期间采样线程不会写入

    队列有上限 max_samples，主循环卡顿时丢最旧的样本。
    """

    def __init__(
        self,
        module_readers: Sequence[ModuleReader],
        gyro_reader: Optional[GyroReader] = None,
        config: Optional[SamplerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config if config is not None else SamplerConfig()
        if not module_readers:
            raise ValueError("OdometrySampler 至少需要一个模块读数回调")
        if config.frequency_hz <= 0:
            raise ValueError(f"采样频率必须为正: {config.frequency_hz}")
        if config.max_samples <= 0:
            raise ValueError(f"max_samples 必须为正: {config.max_samples}")

        self.cfg = config
        self._module_readers = list(module_readers)
        self._gyro_reader = gyro_reader
        self._clock = clock

        self._samples: Deque[OdometrySample] = deque(maxlen=int(config.max_samples))
        self._dropped = 0
        # 可重入：主循环在 lock() 内再调用 drain() 不会自锁
        self._lock = threading.RLock()

        self._thread: Optional[threading.Thread] = None
        self._stop_flag = threading.Event()
        self._failing = False

    # ---------- 临界区 ----------
    def lock(self) -> None:
        self._lock.acquire()

    def unlock(self) -> None:
        self._lock.release()

    @contextmanager
    def locked(self) -> Iterator["OdometrySampler"]:
        self.lock()
        try:
            yield self
        finally:
            self.unlock()

    # ---------- 采样 ----------
    def capture_once(self) -> OdometrySample:
        """读取一次传感器并入队；读数在锁外完成，锁内只做 append。"""
        wheels = tuple(reader() for reader in self._module_readers)
        gyro_yaw = self._gyro_reader() if self._gyro_reader is not None else None
        sample = OdometrySample(
            timestamp=self._clock(),
            wheels=wheels,
            gyro_yaw=None if gyro_yaw is None else float(gyro_yaw),
        )
        with self._lock:
            if len(self._samples) == self._samples.maxlen:
                self._dropped += 1
            self._samples.append(sample)
        return sample

    def drain(self) -> List[OdometrySample]:
        """按采样顺序返回自上次 drain 以来的全部样本并清空；没有新样本时返回空列表"""
        with self._lock:
            out = list(self._samples)
            self._samples.clear()
        return out

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def dropped_count(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def num_modules(self) -> int:
        return len(self._module_readers)

    # ---------- 后台线程 ----------
    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        """启动后台采样线程（幂等）。"""
        if self.is_running:
            return
        self._stop_flag.clear()
        self._thread = threading.Thread(target=self._loop, name="OdometrySampler", daemon=True)
        self._thread.start()
        logger.info(f"[OdometrySampler] 已启动，{self.num_modules} 个模块 @ {self.cfg.frequency_hz:.0f}Hz")

    def stop(self, timeout: float = 1.0) -> None:
        """请求停止采样线程并等待其退出。"""
        self._stop_flag.set()
        th = self._thread
        if th and th.is_alive():
            th.join(timeout=timeout)
        self._thread = None

    def _loop(self) -> None:
        period = 1.0 / float(self.cfg.frequency_hz)
        next_t = time.monotonic()
        while not self._stop_flag.is_set():
            try:
                self.capture_once()
                if self._failing:
                    logger.info("[OdometrySampler] 传感器读数恢复")
                    self._failing = False
            except Exception as e:
                # 单次读数失败跳过本拍，不让异常杀掉采样线程
                if not self._failing:
                    logger.warning(f"[OdometrySampler] 读取传感器失败，跳过本次采样: {e}")
                    self._failing = True

            next_t += period
            delay = next_t - time.monotonic()
            if delay < 0:
                # 落后超过一个周期：不补采，从当前时刻重新对齐
                next_t = time.monotonic()
                delay = 0.0
            self._stop_flag.wait(delay)
