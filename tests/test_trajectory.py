import math

import numpy as np
import pytest

from vslam.lie import SE3
from vslam.trajectory import main, parse_trajectory, pose_axes, read_trajectory, rmse

LINES = [
    "1.0 0 0 0 0 0 0 1\n",
    "\n",
    "2.0 1 2 3 0 0 0.7071067811865476 0.7071067811865476\n",
]


def test_parse_reads_translation_and_quaternion_order():
    poses = parse_trajectory(LINES)
    assert len(poses) == 2
    np.testing.assert_allclose(poses[1].translation, [1, 2, 3])
    np.testing.assert_allclose(
        poses[1].unit_quaternion(), [0.7071067811865476, 0, 0, 0.7071067811865476]
    )


def test_parse_rejects_short_line():
    with pytest.raises(ValueError):
        parse_trajectory(["1.0 2.0 3.0"])


def test_parse_rejects_non_numeric():
    with pytest.raises(ValueError):
        parse_trajectory(["a 0 0 0 0 0 0 1"])


def test_read_trajectory_from_file(tmp_path):
    path = tmp_path / "traj.txt"
    path.write_text("".join(LINES), encoding="utf-8")
    poses = read_trajectory(path)
    assert len(poses) == 2
    np.testing.assert_allclose(poses[0].matrix(), np.eye(4))


def test_read_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_trajectory(tmp_path / "missing.txt")


def test_rmse_of_identical_trajectories_is_zero():
    poses = parse_trajectory(LINES)
    assert rmse(poses, poses) == pytest.approx(0.0, abs=1e-12)


def test_rmse_of_constant_translation_offset():
    truth = [SE3(None, [i, 0, 0]) for i in range(4)]
    estimate = [SE3(None, [i + 1, 0, 0]) for i in range(4)]
    assert rmse(truth, estimate) == pytest.approx(1.0)


def test_rmse_of_rotation_offset_equals_angle():
    truth = [SE3() for _ in range(3)]
    estimate = [SE3.exp([0, 0, 0, 0, 0, 0.3]) for _ in range(3)]
    assert rmse(truth, estimate) == pytest.approx(0.3)


def test_rmse_rejects_empty_and_mismatched():
    with pytest.raises(ValueError):
        rmse([], [])
    with pytest.raises(ValueError):
        rmse([SE3()], [SE3(), SE3()])


def test_pose_axes_of_identity():
    axes = pose_axes(SE3(), 0.1)
    np.testing.assert_allclose(axes, np.vstack((np.zeros(3), 0.1 * np.eye(3))))


def test_pose_axes_are_orthogonal_and_of_given_length():
    pose = SE3.exp([1, 2, 3, 0.2, -0.4, 0.5])
    axes = pose_axes(pose, 0.5)
    np.testing.assert_allclose(axes[0], pose.translation)
    directions = axes[1:] - axes[0]
    np.testing.assert_allclose(directions @ directions.T, 0.25 * np.eye(3), atol=1e-12)


def test_main_prints_rmse(tmp_path, capsys):
    truth = tmp_path / "gt.txt"
    guess = tmp_path / "est.txt"
    truth.write_text("0 0 0 0 0 0 0 1\n", encoding="utf-8")
    guess.write_text("0 1 0 0 0 0 0 1\n", encoding="utf-8")
    assert main([str(truth), str(guess)]) == 0
    out = capsys.readouterr().out
    assert "RMSE = 1" in out


def test_main_missing_file(tmp_path):
    assert main([str(tmp_path / "a.txt"), str(tmp_path / "b.txt")]) == 1


def test_main_mismatched_lengths(tmp_path):
    truth = tmp_path / "gt.txt"
    guess = tmp_path / "est.txt"
    truth.write_text("0 0 0 0 0 0 0 1\n1 0 0 0 0 0 0 1\n", encoding="utf-8")
    guess.write_text("0 0 0 0 0 0 0 1\n", encoding="utf-8")
    assert main([str(truth), str(guess)]) == 1
    assert math.isfinite(rmse(parse_trajectory(["0 0 0 0 0 0 0 1"]) * 2, parse_trajectory(["0 0 0 0 0 0 0 1"]) * 2))