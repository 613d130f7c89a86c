import threading
import time

import pytest

from drive import OdometrySampler, SamplerConfig, WheelState


class FakeModule:
    """可由测试推进的模块读数"""
    def __init__(self) -> None:
        self.distance = 0.0
        self.angle = 0.0

    def __call__(self) -> WheelState:
        return WheelState(self.distance, self.angle)


class FakeClock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        self.t += 0.004
        return self.t


def make_sampler(n=4, gyro=None, **cfg):
    modules = [FakeModule() for _ in range(n)]
    sampler = OdometrySampler(modules, gyro, SamplerConfig(**cfg), clock=FakeClock())
    return sampler, modules


def test_drain_without_samples_is_empty_list():
    sampler, _ = make_sampler()
    assert sampler.drain() == []


def test_drain_returns_capture_order_and_clears():
    sampler, modules = make_sampler(gyro=lambda: 0.25)
    for i in range(3):
        for m in modules:
            m.distance = float(i)
        sampler.capture_once()

    samples = sampler.drain()
    assert [s.wheels[0].distance_m for s in samples] == [0.0, 1.0, 2.0]
    assert [s.timestamp for s in samples] == sorted(s.timestamp for s in samples)
    assert all(s.gyro_yaw == 0.25 for s in samples)
    assert sampler.drain() == []


def test_disconnected_gyro_yields_none():
    sampler, _ = make_sampler(gyro=lambda: None)
    assert sampler.capture_once().gyro_yaw is None
    sampler, _ = make_sampler(gyro=None)
    assert sampler.capture_once().gyro_yaw is None


def test_queue_is_bounded_and_drops_oldest():
    sampler, modules = make_sampler(max_samples=3)
    for i in range(5):
        modules[0].distance = float(i)
        sampler.capture_once()
    assert sampler.dropped_count == 2
    assert [s.wheels[0].distance_m for s in sampler.drain()] == [2.0, 3.0, 4.0]


def test_capture_waits_while_main_loop_holds_lock():
    sampler, _ = make_sampler()
    with sampler.locked():
        worker = threading.Thread(target=sampler.capture_once)
        worker.start()
        worker.join(0.05)
        assert worker.is_alive()
        # 同一线程内可以在 lock() 中再 drain()
        assert sampler.drain() == []
    worker.join(1.0)
    assert not worker.is_alive()
    assert sampler.pending == 1


def test_background_thread_captures_until_stopped():
    sampler, _ = make_sampler(frequency_hz=200.0)
    sampler.start()
    sampler.start()
    time.sleep(0.1)
    sampler.stop()
    assert not sampler.is_running
    n = len(sampler.drain())
    assert n > 0
    time.sleep(0.03)
    assert sampler.drain() == []


def test_reader_failure_does_not_kill_thread():
    calls = {"n": 0}

    def flaky() -> WheelState:
        calls["n"] += 1
        if calls["n"] <= 3:
            raise IOError("CAN 超时")
        return WheelState(1.0, 0.0)

    sampler = OdometrySampler([flaky, flaky], config=SamplerConfig(frequency_hz=200.0))
    sampler.start()
    time.sleep(0.1)
    sampler.stop()
    assert len(sampler.drain()) > 0


def test_invalid_configuration_rejected():
    with pytest.raises(ValueError):
        OdometrySampler([])
    with pytest.raises(ValueError):
        OdometrySampler([FakeModule()], config=SamplerConfig(frequency_hz=0.0))
