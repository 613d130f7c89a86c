import dataclasses
import math

import numpy as np
import pytest

from core.debug_vars import get_debug_var
from geometry import Pose2D
from geometry.se2 import angle_diff
from vision.localization import (
    CameraPose, MultiTagPoseEstimator, TagObservation, TagPose, VisionEstimatorConfig,
    accept_all, all_of, build_filter, fuse_pose_candidates, height_filter, pose_err_filter,
)
from tests.helpers import assert_pose_close, make_observation

TAGS = {
    1: TagPose(5.0, 2.0, 0.5, 0.0, 0.0, math.pi),
    2: TagPose(5.0, 4.0, 0.5, 0.0, 0.0, math.pi),
    3: TagPose(0.0, 3.0, 0.5, 0.0, 0.0, 0.0),
}
CAMS = [
    CameraPose(0.25, 0.0, 0.4, 0.0, math.radians(-15), 0.0),
    CameraPose(-0.25, 0.1, 0.4, 0.0, math.radians(-10), math.pi),
    CameraPose(0.0, 0.25, 0.3, 0.0, 0.0, math.pi / 2),
]
CFG = VisionEstimatorConfig(single_observation_translation_std=0.4,
                            single_observation_rotation_std=0.6)


def make_estimator(candidate_filter=None, cams=CAMS, **cfg):
    return MultiTagPoseEstimator(TAGS, cams, candidate_filter or accept_all(),
                                 dataclasses.replace(CFG, **cfg))


def test_single_observation_reconstructs_robot_pose():
    robot = Pose2D(2.0, 2.5, math.radians(20))
    est = make_estimator()
    obs = [[make_observation(robot, 1, TAGS[1], CAMS[0])], [], None]
    result = est.estimate(obs, timestamp=12.5)
    assert result is not None
    assert_pose_close(result.pose, robot, tol=1e-9)
    assert result.timestamp == 12.5
    assert result.tag_count == 1


@pytest.mark.parametrize("robot", [Pose2D(1.0, 1.0, 0.0), Pose2D(3.0, 5.0, -2.0)])
def test_single_observation_uses_fixed_std(robot):
    est = make_estimator()
    result = est.estimate([[make_observation(robot, 2, TAGS[2], CAMS[0])], [], []])
    np.testing.assert_allclose(result.std_dev, [0.4, 0.4, 0.6])


def test_rodrigues_observation_is_accepted():
    import cv2
    robot = Pose2D(2.0, 3.0, 0.1)
    obs = make_observation(robot, 3, TAGS[3], CAMS[1])
    rvec, _ = cv2.Rodrigues(obs.pose_R)
    obs = TagObservation(3, rvec.reshape(3), obs.pose_t)
    result = make_estimator().estimate([[], [obs], []])
    assert_pose_close(result.pose, robot, tol=1e-6)


def test_three_cameras_fuse_to_mean_with_small_std():
    truths = [Pose2D(1.00, 2.00, 0.0),
              Pose2D(1.02, 1.98, math.radians(1)),
              Pose2D(0.99, 2.01, math.radians(-1))]
    obs = [
        [make_observation(truths[0], 1, TAGS[1], CAMS[0])],
        [make_observation(truths[1], 3, TAGS[3], CAMS[1])],
        [make_observation(truths[2], 2, TAGS[2], CAMS[2])],
    ]
    result = make_estimator().estimate(obs)
    assert result.tag_count == 3
    assert result.pose.x == pytest.approx(1.00333333, abs=1e-6)
    assert result.pose.y == pytest.approx(1.99666667, abs=1e-6)
    assert result.pose.yaw == pytest.approx(0.0, abs=1e-9)
    assert np.all(np.isfinite(result.std_dev))
    assert np.all(result.std_dev > 0)
    assert np.all(result.std_dev < 0.05)
    assert result.std_dev[2] == pytest.approx(math.radians(1))


def test_tight_cluster_is_trusted_more_than_scattered():
    tight = [Pose2D(1.0, 1.0, 0.0), Pose2D(1.01, 1.0, 0.01), Pose2D(1.0, 1.01, -0.01)]
    scattered = [Pose2D(1.0, 1.0, 0.0), Pose2D(1.5, 0.6, 0.3), Pose2D(0.6, 1.4, -0.3)]
    _, std_tight = fuse_pose_candidates(tight, CFG)
    _, std_scattered = fuse_pose_candidates(scattered, CFG)
    assert np.all(std_tight < std_scattered)


def test_heading_average_is_wrap_aware():
    pose, std = fuse_pose_candidates(
        [Pose2D(0, 0, math.radians(179)), Pose2D(0, 0, math.radians(-179))], CFG)
    assert abs(angle_diff(pose.yaw, math.pi)) < 1e-9
    assert std[2] == pytest.approx(math.radians(2) / math.sqrt(2))


def test_no_candidates_means_no_result():
    assert fuse_pose_candidates([], CFG) is None
    est = make_estimator()
    assert est.estimate([[], None, []]) is None


def test_unknown_tag_contributes_nothing():
    robot = Pose2D(2.0, 2.0, 0.0)
    unknown = make_observation(robot, 1, TAGS[1], CAMS[0])
    unknown.tag_id = 99
    assert make_estimator().estimate([[unknown], [], []]) is None

    known = make_observation(robot, 1, TAGS[1], CAMS[0])
    result = make_estimator().estimate([[unknown, known], [], []])
    assert result.tag_count == 1


def test_observation_without_pose_is_skipped():
    bad = TagObservation(1, None, None)
    assert make_estimator().estimate([[bad], [], []]) is None


def test_camera_count_mismatch_is_configuration_error():
    with pytest.raises(ValueError):
        make_estimator().estimate([[], []])


def test_rejection_filter_removes_implausible_candidates():
    robot = Pose2D(2.0, 2.0, 0.0)
    good = make_observation(robot, 1, TAGS[1], CAMS[0])
    ambiguous = make_observation(Pose2D(3.0, 1.0, 1.0), 2, TAGS[2], CAMS[0], pose_err=0.9)
    est = make_estimator(pose_err_filter(0.2))
    result = est.estimate([[good, ambiguous], [], []])
    assert result.tag_count == 1
    assert_pose_close(result.pose, robot)
    assert get_debug_var("AprilTags/Filtering/RejectedCount") == 1
    assert get_debug_var("AprilTags/Filtering/CurrentFilterImplementation") == "pose_err<=0.20"


def test_height_filter_rejects_floating_robot():
    # Tag 实际高度 0.5，布局里登记成 2.0 -> 反推车体悬空 1.5m
    lifted = dict(TAGS)
    lifted[1] = TagPose(5.0, 2.0, 2.0, 0.0, 0.0, math.pi)
    obs = make_observation(Pose2D(2.0, 2.0, 0.0), 1, TAGS[1], CAMS[0])
    est = MultiTagPoseEstimator(lifted, CAMS, height_filter(0.5), CFG)
    assert est.estimate([[obs], [], []]) is None


def test_current_pose_only_feeds_diagnostics():
    robot = Pose2D(2.0, 2.5, 0.3)
    obs = [[make_observation(robot, 1, TAGS[1], CAMS[0])], [], []]
    a = make_estimator().estimate(obs, current_pose=None)
    b = make_estimator().estimate(obs, current_pose=Pose2D(9.0, -4.0, 2.0))
    assert a.pose == b.pose
    observed = get_debug_var("AprilTags/Filtering/AprilTagsObservedPositions")
    assert len(observed) == 1


def test_observed_tag_position_matches_layout_when_odometry_is_right():
    robot = Pose2D(2.0, 2.5, 0.3)
    make_estimator().estimate([[make_observation(robot, 1, TAGS[1], CAMS[0])], [], []], current_pose=robot)
    x, y, z = get_debug_var("AprilTags/Filtering/AprilTagsObservedPositions")[0][:3]
    assert (x, y, z) == pytest.approx((5.0, 2.0, 0.5))


def test_parallel_cameras_match_serial():
    truths = [Pose2D(1.0, 2.0, 0.0), Pose2D(1.1, 2.1, 0.05), Pose2D(0.9, 1.9, -0.05)]
    obs = [
        [make_observation(truths[0], 1, TAGS[1], CAMS[0])],
        [make_observation(truths[1], 3, TAGS[3], CAMS[1])],
        [make_observation(truths[2], 2, TAGS[2], CAMS[2])],
    ]
    serial = make_estimator().estimate(obs)
    par_est = make_estimator(parallel_cameras=True)
    try:
        parallel = par_est.estimate(obs)
    finally:
        par_est.close()
    assert_pose_close(parallel.pose, serial.pose)
    np.testing.assert_allclose(parallel.std_dev, serial.std_dev)


def test_filter_composition_and_config_names():
    f = all_of(height_filter(0.5), pose_err_filter(0.2))
    assert f.name == "height<=0.50m & pose_err<=0.20"
    assert build_filter(["height"], CFG).name == "height<=0.50m"
    with pytest.raises(ValueError):
        build_filter(["no_such_filter"], CFG)


def test_string_keyed_layout_is_normalised():
    robot = Pose2D(2.0, 2.5, 0.2)
    est = MultiTagPoseEstimator({str(k): t for k, t in TAGS.items()}, CAMS, accept_all(), CFG)
    result = est.estimate([[make_observation(robot, 1, TAGS[1], CAMS[0])], [], []])
    assert_pose_close(result.pose, robot)
    assert get_debug_var("AprilTags/Filtering/VisibleFieldTargets") == [TAGS[1]]


def test_default_configs_are_not_shared():
    a = MultiTagPoseEstimator(TAGS, CAMS)
    b = MultiTagPoseEstimator(TAGS, CAMS)
    assert a.cfg is not b.cfg
