import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from vslam.lie import (
    SE3,
    SO3,
    angle_axis_to_matrix,
    euler_angles_zyx,
    hat,
    main,
    matrix_to_quaternion,
    quaternion_to_matrix,
    vee,
)


def _rz(a):
    return angle_axis_to_matrix(a, [0, 0, 1])


def _ry(a):
    return angle_axis_to_matrix(a, [0, 1, 0])


def _rx(a):
    return angle_axis_to_matrix(a, [1, 0, 0])


def test_hat_vee_round_trip_and_skew():
    w = np.array([0.3, -1.2, 2.5])
    m = hat(w)
    assert_allclose(m, -m.T)
    assert_allclose(vee(m), w)
    assert_allclose(m @ np.array([1.0, 2.0, 3.0]), np.cross(w, [1.0, 2.0, 3.0]))


def test_angle_axis_is_rotation_and_fixes_axis():
    axis = np.array([1.0, 2.0, -0.5])
    r = angle_axis_to_matrix(0.7, axis)
    assert_allclose(r @ r.T, np.eye(3), atol=1e-12)
    assert math.isclose(np.linalg.det(r), 1.0)
    assert_allclose(r @ axis, axis, atol=1e-12)


def test_zero_axis_rejected():
    with pytest.raises(ValueError):
        angle_axis_to_matrix(1.0, [0, 0, 0])


def test_quaternion_and_matrix_constructions_agree():
    r = angle_axis_to_matrix(math.pi / 2, [0, 0, 1])
    q = matrix_to_quaternion(r)
    assert_allclose(SO3(r).matrix, SO3.from_quaternion(q).matrix, atol=1e-12)
    assert_allclose(quaternion_to_matrix(q), r, atol=1e-12)


@pytest.mark.parametrize("angle", [0.1, 1.5, 3.0, math.pi - 1e-3])
def test_quaternion_round_trip(angle):
    r = angle_axis_to_matrix(angle, [0.2, -0.7, 0.4])
    q = matrix_to_quaternion(r)
    assert math.isclose(np.linalg.norm(q), 1.0)
    assert_allclose(quaternion_to_matrix(q), r, atol=1e-10)


def test_log_of_z_rotation():
    so3 = SO3(_rz(math.pi / 2))
    assert_allclose(so3.log(), [0, 0, math.pi / 2], atol=1e-12)


@pytest.mark.parametrize(
    "omega", [[0.0, 0.0, 0.0], [1e-8, 2e-8, 0.0], [0.3, -0.2, 0.9], [0.0, math.pi - 1e-9, 0.0]]
)
def test_so3_exp_log_round_trip(omega):
    assert_allclose(SO3.exp(omega).log(), omega, atol=1e-8)


def test_so3_inverse_and_composition():
    a = SO3.exp([0.4, 0.1, -0.3])
    b = SO3.exp([-0.2, 0.5, 0.7])
    assert_allclose((a * a.inverse()).matrix, np.eye(3), atol=1e-12)
    assert_allclose((a * b).matrix, a.matrix @ b.matrix)
    p = np.array([1.0, -2.0, 0.5])
    assert_allclose(a * p, a.matrix @ p)


def test_so3_rejects_non_rotation():
    with pytest.raises(ValueError):
        SO3(np.diag([1.0, 2.0, 1.0]))
    with pytest.raises(ValueError):
        SO3(np.diag([1.0, 1.0, -1.0]))


def test_euler_angles_reconstruct_matrix():
    r = _rz(0.4) @ _ry(-0.3) @ _rx(1.1)
    yaw, pitch, roll = euler_angles_zyx(r)
    assert_allclose(_rz(yaw) @ _ry(pitch) @ _rx(roll), r, atol=1e-12)
    assert 0.0 <= yaw <= math.pi


def test_euler_angles_of_yaw_only():
    assert_allclose(euler_angles_zyx(_rz(math.pi / 4)), [math.pi / 4, 0, 0], atol=1e-12)


@pytest.mark.parametrize(
    "xi", [[0.0] * 6, [1.0, -0.5, 0.2, 1e-9, 0.0, 0.0], [0.3, 0.1, -0.7, 0.5, -0.4, 1.2]]
)
def test_se3_exp_log_round_trip(xi):
    assert_allclose(SE3.exp(xi).log(), xi, atol=1e-9)


def test_se3_pure_translation():
    t = SE3.exp([1.0, 2.0, 3.0, 0.0, 0.0, 0.0])
    assert_allclose(t.translation, [1.0, 2.0, 3.0])
    assert_allclose(t.rotation_matrix, np.eye(3))


def test_se3_hat_vee_round_trip():
    xi = np.array([0.1, 0.2, 0.3, -0.4, 0.5, -0.6])
    m = SE3.hat(xi)
    assert_allclose(m[3], np.zeros(4))
    assert_allclose(SE3.vee(m), xi)


def test_se3_inverse_matrix_and_points():
    t = SE3.exp([0.5, -1.0, 2.0, 0.3, 0.2, -0.1])
    assert_allclose((t * t.inverse()).matrix(), np.eye(4), atol=1e-12)
    assert_allclose(t.inverse().matrix(), np.linalg.inv(t.matrix()), atol=1e-12)
    points = np.array([[1.0, 0.0, 0.0], [0.0, 2.0, -1.0]])
    expected = (t.matrix() @ np.c_[points, np.ones(2)].T).T[:, :3]
    assert_allclose(t * points, expected, atol=1e-12)
    assert_allclose(t.matrix3x4(), t.matrix()[:3])


def test_se3_adjoint_identity():
    t = SE3.exp([0.5, -1.0, 2.0, 0.3, 0.2, -0.1])
    xi = np.array([0.1, -0.2, 0.05, 0.3, 0.1, -0.4])
    lhs = t * SE3.exp(xi) * t.inverse()
    rhs = SE3.exp(t.adjoint() @ xi)
    assert_allclose(lhs.matrix(), rhs.matrix(), atol=1e-10)


def test_se3_from_matrix_and_quaternion():
    t = SE3.from_quaternion([0.35, 0.2, 0.3, 0.1], [0.3, 0.1, 0.1])
    again = SE3.from_matrix(t.matrix())
    assert_allclose(again.matrix(), t.matrix())
    q = t.unit_quaternion()
    assert_allclose(quaternion_to_matrix(q), t.rotation_matrix, atol=1e-12)
    with pytest.raises(ValueError):
        SE3.from_matrix(np.ones((4, 4)))
    with pytest.raises(ValueError):
        SE3.from_matrix(np.eye(3))


def test_coordinate_transform_example():
    t1w = SE3.from_quaternion([0.35, 0.2, 0.3, 0.1], [0.3, 0.1, 0.1])
    t2w = SE3.from_quaternion([-0.5, 0.4, -0.1, 0.2], [-0.1, 0.5, 0.3])
    p2 = (t2w * t1w.inverse()) * np.array([0.5, 0.0, 0.2])
    assert_allclose(p2, [-0.0309731, 0.73499, 0.296108], atol=1e-5)


def test_main_prints_demo(capsys):
    assert main(["lie"]) == 0
    out = capsys.readouterr().out
    assert "they are equal" in out
    assert "se3 hat vee" in out