import pytest

from estimation import PoseBuffer
from geometry import Pose2D


def test_empty_buffer_has_nothing_to_sample():
    buf = PoseBuffer()
    assert buf.sample(1.0) is None
    assert buf.oldest_timestamp is None
    assert buf.latest is None


def test_sample_interpolates_and_clamps():
    buf = PoseBuffer(10.0)
    buf.add(1.0, Pose2D(0.0, 0.0, 0.0))
    buf.add(2.0, Pose2D(1.0, 2.0, 0.0))
    mid = buf.sample(1.25)
    assert (mid.x, mid.y) == pytest.approx((0.25, 0.5))
    assert buf.sample(0.0) == Pose2D(0.0, 0.0, 0.0)
    assert buf.sample(5.0) == Pose2D(1.0, 2.0, 0.0)


def test_old_entries_are_pruned_but_one_is_kept():
    buf = PoseBuffer(1.0)
    for i in range(30):
        buf.add(i * 0.1, Pose2D(i, 0.0, 0.0))
    assert buf.oldest_timestamp == pytest.approx(1.9)
    assert buf.newest_timestamp == pytest.approx(2.9)

    single = PoseBuffer(0.5)
    single.add(0.0, Pose2D())
    single.add(100.0, Pose2D(1.0, 0.0, 0.0))
    assert len(single) == 1


def test_out_of_order_insert_is_sorted():
    buf = PoseBuffer(10.0)
    buf.add(1.0, Pose2D(1.0, 0.0, 0.0))
    buf.add(3.0, Pose2D(3.0, 0.0, 0.0))
    buf.add(2.0, Pose2D(2.0, 0.0, 0.0))
    buf.add(3.0, Pose2D(3.5, 0.0, 0.0))
    assert len(buf) == 3
    assert buf.sample(2.0).x == 2.0
    assert buf.latest == (3.0, Pose2D(3.5, 0.0, 0.0))


def test_history_must_be_positive():
    with pytest.raises(ValueError):
        PoseBuffer(0.0)
