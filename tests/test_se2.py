import math

import numpy as np
import pytest

from geometry import Pose2D, Twist2D, wrap_angle
from geometry.se2 import angle_diff, interpolate, pose_exp, pose_log, relative_to, transform_by
from geometry.se3 import from_xyzrpy, inv_se3, R_to_rpy_zyx, rpy_to_R, se3_to_pose2d, to_R
from tests.helpers import assert_pose_close


def test_wrap_angle_range():
    assert wrap_angle(0.5) == 0.5
    assert wrap_angle(3 * math.pi / 2) == pytest.approx(-math.pi / 2)
    assert wrap_angle(-math.pi) == pytest.approx(math.pi)
    assert wrap_angle(2 * math.pi + 0.5) == pytest.approx(0.5)


def test_angle_diff_takes_short_way_across_pi():
    a, b = math.radians(179), math.radians(-179)
    assert angle_diff(a, b) == pytest.approx(math.radians(-2))
    assert angle_diff(b, a) == pytest.approx(math.radians(2))


def test_pose2d_wraps_yaw_on_construction():
    assert Pose2D(0, 0, 2 * math.pi + 0.1).yaw == pytest.approx(0.1)


def test_transform_and_relative_are_inverse():
    origin = Pose2D(1.0, 2.0, math.radians(90))
    delta = Pose2D(0.5, 0.0, 0.0)
    moved = transform_by(origin, delta)
    assert_pose_close(moved, Pose2D(1.0, 2.5, math.radians(90)))
    assert_pose_close(relative_to(moved, origin), delta)


def test_exp_of_straight_twist_moves_along_heading():
    start = Pose2D(0.0, 0.0, math.radians(90))
    end = pose_exp(start, Twist2D(1.0, 0.0, 0.0))
    assert_pose_close(end, Pose2D(0.0, 1.0, math.radians(90)))


def test_exp_zero_twist_is_identity():
    start = Pose2D(1.234, -5.6, 0.7)
    assert pose_exp(start, Twist2D()) is start


def test_log_inverts_exp_on_arc():
    start = Pose2D(0.3, -0.2, 0.4)
    twist = Twist2D(0.8, 0.1, 0.9)
    back = pose_log(start, pose_exp(start, twist))
    assert back.dx == pytest.approx(twist.dx)
    assert back.dy == pytest.approx(twist.dy)
    assert back.dtheta == pytest.approx(twist.dtheta)


def test_quarter_circle_arc():
    # 半径 1 的四分之一圆弧：弧长 pi/2，转角 pi/2
    end = pose_exp(Pose2D(), Twist2D(math.pi / 2, 0.0, math.pi / 2))
    assert_pose_close(end, Pose2D(1.0, 1.0, math.pi / 2))


def test_interpolate_midpoint_and_clamp():
    a = Pose2D(0.0, 0.0, 0.0)
    b = Pose2D(2.0, 0.0, 0.0)
    assert_pose_close(interpolate(a, b, 0.5), Pose2D(1.0, 0.0, 0.0))
    assert interpolate(a, b, -1.0) is a
    assert interpolate(a, b, 2.0) is b


def test_interpolate_heading_across_pi():
    a = Pose2D(0.0, 0.0, math.radians(170))
    b = Pose2D(0.0, 0.0, math.radians(-170))
    mid = interpolate(a, b, 0.5)
    assert abs(angle_diff(mid.yaw, math.pi)) < 1e-9


def test_rpy_roundtrip_and_rodrigues_input():
    R = rpy_to_R(0.1, -0.2, 0.3)
    assert R_to_rpy_zyx(R) == pytest.approx((0.1, -0.2, 0.3))
    rvec = np.array([0.0, 0.0, math.pi / 2])
    np.testing.assert_allclose(to_R(rvec), rpy_to_R(0.0, 0.0, math.pi / 2), atol=1e-12)
    with pytest.raises(ValueError):
        to_R(np.zeros(4))


def test_se3_inverse_and_ground_projection():
    T = from_xyzrpy(1.0, 2.0, 0.3, 0.0, 0.0, 0.5)
    np.testing.assert_allclose(T @ inv_se3(T), np.eye(4), atol=1e-12)
    assert_pose_close(se3_to_pose2d(T), Pose2D(1.0, 2.0, 0.5))
