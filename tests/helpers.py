import pytest

from geometry import Pose2D
from geometry.se2 import angle_diff
from geometry.se3 import from_xyzrpy, inv_se3, se3_from_pose2d
from vision.localization import CameraPose, TagObservation, TagPose


def make_observation(robot: Pose2D, tag_id: int, tag: TagPose, cam: CameraPose,
                     pose_err: float = 0.0) -> TagObservation:
    """已知车体位姿时，合成相机看到的 cam←tag 观测"""
    T_world_tag = from_xyzrpy(tag.x, tag.y, tag.z, tag.roll, tag.pitch, tag.yaw)
    T_car_cam = from_xyzrpy(cam.x, cam.y, cam.z, cam.roll, cam.pitch, cam.yaw)
    T_cam_tag = inv_se3(se3_from_pose2d(robot) @ T_car_cam) @ T_world_tag
    return TagObservation(tag_id=tag_id, pose_R=T_cam_tag[:3, :3].copy(),
                          pose_t=T_cam_tag[:3, 3].copy(), pose_err=pose_err)


def assert_pose_close(actual: Pose2D, expected: Pose2D, tol: float = 1e-9) -> None:
    assert actual.x == pytest.approx(expected.x, abs=tol)
    assert actual.y == pytest.approx(expected.y, abs=tol)
    assert abs(angle_diff(actual.yaw, expected.yaw)) < tol
