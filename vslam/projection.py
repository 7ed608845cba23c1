"""Reprojection errors and their Jacobians for pose and landmark estimation.

Pose updates are left perturbations ``exp(delta) * T`` with ``delta``
ordered translation first, then rotation.
"""

from __future__ import annotations

import numpy as np

from vslam.lie import SE3


def update_pose(pose, delta):
    """Apply a left-multiplied tangent update to a pose."""
    return SE3.exp(delta) * pose


def chi2(error, information=None):
    """Weighted squared error ``e^T * information * e``."""
    e = np.asarray(error, dtype=float)
    if information is None:
        return float(e @ e)
    return float(e @ np.asarray(information, dtype=float) @ e)


def _intrinsics(K):
    k = np.asarray(K, dtype=float)
    if k.shape != (3, 3):
        raise ValueError(f"K must be 3x3, got shape {k.shape}")
    return k


def _measurement(value):
    m = np.asarray(value, dtype=float)
    if m.shape != (2,):
        raise ValueError(f"measurement must be a 2-vector, got shape {m.shape}")
    return m


def _project(K, p_cam):
    pixel = K @ p_cam
    return pixel[:2] / pixel[2]


def _pose_jacobian(K, p_cam):
    fx, fy = K[0, 0], K[1, 1]
    x, y, z = p_cam
    z_inv = 1.0 / (z + 1e-18)
    z_inv2 = z_inv * z_inv
    return np.array(
        [
            [
                -fx * z_inv,
                0.0,
                fx * x * z_inv2,
                fx * x * y * z_inv2,
                -fx - fx * x * x * z_inv2,
                fx * y * z_inv,
            ],
            [
                0.0,
                -fy * z_inv,
                fy * y * z_inv2,
                fy + fy * y * y * z_inv2,
                -fy * x * y * z_inv2,
                -fy * x * z_inv,
            ],
        ]
    )


class PoseOnlyProjection:
    """Reprojection of a fixed world point; only the pose varies."""

    def __init__(self, point, K, measurement):
        self.point = np.asarray(point, dtype=float)
        self.K = _intrinsics(K)
        self.measurement = _measurement(measurement)

    def error(self, pose):
        """Measured pixel minus the projected pixel."""
        return self.measurement - _project(self.K, pose * self.point)

    def jacobian(self, pose):
        """2x6 derivative of the error by a left pose update."""
        return _pose_jacobian(self.K, pose * self.point)


class StereoProjection:
    """Reprojection of a landmark into one camera of a rig; pose and point vary."""

    def __init__(self, K, extrinsic, measurement):
        self.K = _intrinsics(K)
        self.extrinsic = extrinsic
        self.measurement = _measurement(measurement)

    def error(self, pose, point):
        """Measured pixel minus the projected pixel."""
        return self.measurement - _project(self.K, self.extrinsic * (pose * point))

    def jacobians(self, pose, point):
        """Derivatives of the error: 2x6 by the pose, 2x3 by the point."""
        p_cam = (self.extrinsic * pose) * point
        j_pose = _pose_jacobian(self.K, p_cam)
        j_point = j_pose[:, :3] @ self.extrinsic.rotation_matrix @ pose.rotation_matrix
        return j_pose, j_point