"""Pinhole camera model of one eye of a stereo rig."""

from __future__ import annotations

import numpy as np

from vslam.lie import SE3


class Camera:
    """Pinhole camera with intrinsics and an extrinsic from the rig to itself."""

    def __init__(self, fx=0.0, fy=0.0, cx=0.0, cy=0.0, baseline=0.0, pose=None):
        self.fx = float(fx)
        self.fy = float(fy)
        self.cx = float(cx)
        self.cy = float(cy)
        self.baseline = float(baseline)
        self._pose = SE3() if pose is None else pose
        self._pose_inv = self._pose.inverse()

    @property
    def pose(self):
        """Extrinsic transform from the stereo rig to this camera."""
        return self._pose

    @property
    def pose_inv(self):
        """Inverse of the extrinsic transform."""
        return self._pose_inv

    def intrinsic_matrix(self):
        """The 3x3 intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]]
        )

    def world_to_camera(self, p_w, T_c_w):
        """Point in this camera's frame of a world point."""
        return (self._pose * T_c_w) * p_w

    def camera_to_world(self, p_c, T_c_w):
        """World point of a point in this camera's frame."""
        return (T_c_w.inverse() * self._pose_inv) * p_c

    def camera_to_pixel(self, p_c):
        """Pixel coordinates of a point in this camera's frame."""
        p = np.asarray(p_c, dtype=float)
        return np.stack(
            (
                self.fx * p[..., 0] / p[..., 2] + self.cx,
                self.fy * p[..., 1] / p[..., 2] + self.cy,
            ),
            axis=-1,
        )

    def pixel_to_camera(self, p_p, depth=1.0):
        """Point in this camera's frame seen at a pixel at the given depth."""
        p = np.asarray(p_p, dtype=float)
        depth = np.asarray(depth, dtype=float)
        return np.stack(
            (
                (p[..., 0] - self.cx) * depth / self.fx,
                (p[..., 1] - self.cy) * depth / self.fy,
                np.broadcast_to(depth, p[..., 0].shape),
            ),
            axis=-1,
        )

    def world_to_pixel(self, p_w, T_c_w):
        """Pixel coordinates of a world point."""
        return self.camera_to_pixel(self.world_to_camera(p_w, T_c_w))

    def pixel_to_world(self, p_p, T_c_w, depth=1.0):
        """World point seen at a pixel at the given depth."""
        return self.camera_to_world(self.pixel_to_camera(p_p, depth), T_c_w)

    def __repr__(self):
        return (
            f"Camera(fx={self.fx}, fy={self.fy}, cx={self.cx}, cy={self.cy}, "
            f"baseline={self.baseline}, pose={self._pose!r})"
        )