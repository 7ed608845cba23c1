"""Triangulation and small conversions used by the odometry."""

from __future__ import annotations

import numpy as np

_QUALITY_RATIO = 1e-2


def triangulate(poses, points):
    """Linear triangulation of one point seen from several poses by SVD.

    ``poses`` are SE3 transforms from the world to each camera and
    ``points`` the matching points on the normalized image plane. Returns
    the world point, or ``None`` when the solution is poorly conditioned.
    """
    poses = list(poses)
    points = [np.asarray(p, dtype=float) for p in points]
    if len(poses) != len(points):
        raise ValueError("poses and points must have the same length")
    if len(poses) < 2:
        raise ValueError("triangulation needs at least two views")
    rows = []
    for pose, point in zip(poses, points):
        m = pose.matrix3x4()
        rows.append(point[0] * m[2] - m[0])
        rows.append(point[1] * m[2] - m[1])
    a = np.array(rows)
    _, singular, vt = np.linalg.svd(a, full_matrices=False)
    v = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        world = v[:3] / v[3]
        ratio = singular[3] / singular[2]
    if not np.all(np.isfinite(world)) or not ratio < _QUALITY_RATIO:
        return None
    return world


def to_vec2(point):
    """2-vector of a point with ``x`` and ``y`` attributes or of a sequence."""
    if hasattr(point, "x") and hasattr(point, "y"):
        return np.array([point.x, point.y], dtype=float)
    values = np.asarray(point, dtype=float)
    if values.ndim != 1 or values.size < 2:
        raise ValueError("point needs at least two coordinates")
    return values[:2].copy()