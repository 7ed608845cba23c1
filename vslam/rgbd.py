"""Point clouds from colour and depth images taken at known camera poses.

Colour images are ``H x W x 3`` arrays in blue, green, red channel order;
depth images are ``H x W`` arrays of raw sensor values, where zero means no
measurement. Point clouds are ``N x 6`` arrays of ``x, y, z, r, g, b``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from vslam.lie import SE3

_POSE_FIELDS = 7


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole intrinsics of a depth camera and the scale of its depth values."""

    fx: float
    fy: float
    cx: float
    cy: float
    depth_scale: float


JOIN_MAP_INTRINSICS = Intrinsics(fx=518.0, fy=519.0, cx=325.5, cy=253.5, depth_scale=1000.0)
DENSE_RGBD_INTRINSICS = Intrinsics(fx=481.2, fy=-480.0, cx=319.5, cy=239.5, depth_scale=5000.0)


def read_poses(path, count=5):
    """Read ``count`` camera-to-world poses from a whitespace-separated file.

    Each pose is seven numbers ``tx ty tz qx qy qz qw``.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    with open(path, encoding="utf-8") as stream:
        tokens = stream.read().split()
    needed = count * _POSE_FIELDS
    if len(tokens) < needed:
        raise ValueError(
            f"{path}: expected {needed} values for {count} poses, got {len(tokens)}"
        )
    try:
        values = np.array([float(token) for token in tokens[:needed]])
    except ValueError as exc:
        raise ValueError(f"{path}: {exc}") from None
    poses = []
    for tx, ty, tz, qx, qy, qz, qw in values.reshape(count, _POSE_FIELDS):
        poses.append(SE3.from_quaternion([qw, qx, qy, qz], [tx, ty, tz]))
    return poses


def back_project(color, depth, pose, intrinsics):
    """World points with colour of every pixel that has a depth measurement.

    Points come in row-major pixel order.
    """
    color = np.asarray(color)
    depth = np.asarray(depth)
    if depth.ndim != 2:
        raise ValueError(f"depth must be two-dimensional, got shape {depth.shape}")
    if color.ndim != 3 or color.shape[:2] != depth.shape or color.shape[2] < 3:
        raise ValueError("color must be H x W x 3 and match the depth image")
    v, u = np.nonzero(depth != 0)
    z = depth[v, u].astype(float) / intrinsics.depth_scale
    camera_points = np.column_stack(
        (
            (u - intrinsics.cx) * z / intrinsics.fx,
            (v - intrinsics.cy) * z / intrinsics.fy,
            z,
        )
    )
    world = pose * camera_points if len(camera_points) else np.empty((0, 3))
    bgr = color[v, u, :3].astype(float)
    return np.column_stack((world, bgr[:, ::-1]))


def join_map(colors, depths, poses, intrinsics):
    """Back-project every frame and stack the points into one cloud."""
    colors, depths, poses = list(colors), list(depths), list(poses)
    if not len(colors) == len(depths) == len(poses):
        raise ValueError("colors, depths and poses must have the same length")
    clouds = [
        back_project(color, depth, pose, intrinsics)
        for color, depth, pose in zip(colors, depths, poses)
    ]
    if not clouds:
        return np.empty((0, 6))
    return np.vstack(clouds)


def voxel_filter(points, resolution):
    """Replace the points in each cubic voxel by their centroid.

    Every column, colour included, is averaged. The result is ordered by
    voxel index.
    """
    if resolution <= 0:
        raise ValueError("resolution must be positive")
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError("points must be an N x 3 or wider array")
    if len(points) == 0:
        return points.copy()
    keys = np.floor(points[:, :3] / resolution).astype(np.int64)
    _, inverse = np.unique(keys, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    groups = inverse.max() + 1
    sums = np.zeros((groups, points.shape[1]))
    np.add.at(sums, inverse, points)
    counts = np.bincount(inverse, minlength=groups)
    return sums / counts[:, None]


def statistical_outlier_removal(points, mean_k=50, std_mul=1.0):
    """Drop points whose mean distance to their neighbours is unusually large.

    A point is kept when the mean distance to its ``mean_k`` nearest
    neighbours is at most the overall mean of that distance plus ``std_mul``
    standard deviations.
    """
    if mean_k < 1:
        raise ValueError("mean_k must be at least 1")
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError("points must be an N x 3 or wider array")
    n = len(points)
    if n <= 1:
        return points.copy()
    k = min(mean_k, n - 1)
    xyz = points[:, :3]
    distances, _ = cKDTree(xyz).query(xyz, k=k + 1)
    mean_distances = distances[:, 1:].mean(axis=1)
    mean = mean_distances.mean()
    std = mean_distances.std(ddof=1)
    threshold = mean + std_mul * std
    return points[mean_distances <= threshold]