"""Lens undistortion of images and point clouds from stereo disparity."""

from __future__ import annotations

import numpy as np

K1, K2, P1, P2 = -0.28340811, 0.07395907, 0.00019359, 1.76187114e-05
UNDISTORT_FX, UNDISTORT_FY = 458.654, 457.296
UNDISTORT_CX, UNDISTORT_CY = 367.215, 248.375

STEREO_FX = STEREO_FY = 718.856
STEREO_CX, STEREO_CY = 607.1928, 185.2157
STEREO_BASELINE = 0.573
MAX_DISPARITY = 96.0


def distort_point(x, y, k1, k2, p1, p2):
    """Apply radial and tangential distortion to normalized coordinates."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    r2 = x * x + y * y
    radial = 1.0 + k1 * r2 + k2 * r2 * r2
    x_d = x * radial + 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
    y_d = y * radial + p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
    if x_d.ndim == 0:
        return float(x_d), float(y_d)
    return x_d, y_d


def undistort_image(
    image,
    k1=K1,
    k2=K2,
    p1=P1,
    p2=P2,
    fx=UNDISTORT_FX,
    fy=UNDISTORT_FY,
    cx=UNDISTORT_CX,
    cy=UNDISTORT_CY,
):
    """Undistort a grayscale image by nearest-neighbour lookup.

    Pixels whose distorted position falls outside the image become zero.
    """
    img = np.asarray(image)
    if img.ndim != 2:
        raise ValueError(f"image must be two-dimensional, got shape {img.shape}")
    rows, cols = img.shape
    v, u = np.mgrid[0:rows, 0:cols].astype(float)
    x_d, y_d = distort_point((u - cx) / fx, (v - cy) / fy, k1, k2, p1, p2)
    u_d = fx * x_d + cx
    v_d = fy * y_d + cy
    valid = (u_d >= 0) & (v_d >= 0) & (u_d < cols) & (v_d < rows)
    result = np.zeros_like(img)
    result[valid] = img[v_d[valid].astype(int), u_d[valid].astype(int)]
    return result


def stereo_point_cloud(
    gray,
    disparity,
    fx=STEREO_FX,
    fy=STEREO_FY,
    cx=STEREO_CX,
    cy=STEREO_CY,
    baseline=STEREO_BASELINE,
):
    """Points ``(x, y, z, intensity)`` from a left image and its disparity.

    Pixels whose disparity is not strictly between 0 and 96 are skipped;
    intensity is scaled to ``[0, 1]``. Points are in row-major pixel order.
    """
    gray = np.asarray(gray)
    disparity = np.asarray(disparity, dtype=float)
    if gray.ndim != 2 or gray.shape != disparity.shape:
        raise ValueError("gray image and disparity must be 2-D and of equal shape")
    valid = (disparity > 0.0) & (disparity < MAX_DISPARITY)
    v, u = np.nonzero(valid)
    d = disparity[v, u]
    depth = fx * baseline / d
    return np.column_stack(
        (
            (u - cx) / fx * depth,
            (v - cy) / fy * depth,
            depth,
            gray[v, u] / 255.0,
        )
    )