"""Dense monocular depth estimation along known camera poses.

Every pixel of a reference image holds a Gaussian depth estimate. For each
new image, the pixel is searched for along its epipolar line by zero-mean
normalized cross-correlation. A match is triangulated, and the result is
fused into the estimate.

Images are 2-D grayscale arrays of ``HEIGHT x WIDTH`` pixels. Points are
``(x, y)`` pixel coordinates.
"""

from __future__ import annotations

import argparse
import math
import os
from typing import NamedTuple

import numpy as np
from PIL import Image

from vslam.lie import SE3

BORDER = 20
WIDTH = 640
HEIGHT = 480
FX = float(np.float32(481.2))
FY = float(np.float32(-480.0))
CX = float(np.float32(319.5))
CY = float(np.float32(239.5))
NCC_WINDOW_SIZE = 3
NCC_AREA = (2 * NCC_WINDOW_SIZE + 1) ** 2
MIN_COV = 0.1
MAX_COV = 10.0
NCC_THRESHOLD = float(np.float32(0.85))
SEARCH_STEP = 0.7
MAX_HALF_LENGTH = 100.0
MIN_DEPTH = 0.1
INIT_DEPTH = 3.0
INIT_COV2 = 3.0

SEQUENCE_FILE = "first_200_frames_traj_over_table_input_sequence.txt"
REFERENCE_DEPTH_FILE = os.path.join("depthmaps", "scene_000.depth")

_RECORD_FIELDS = 8
_OFFSETS = np.arange(-NCC_WINDOW_SIZE, NCC_WINDOW_SIZE + 1, dtype=float)
# x is the outer loop and y the inner one.
_DX, _DY = (a.ravel() for a in np.meshgrid(_OFFSETS, _OFFSETS, indexing="ij"))


class EpipolarMatch(NamedTuple):
    """Best match of a reference pixel and the direction of its epipolar line."""

    point: np.ndarray
    direction: np.ndarray


class DepthError(NamedTuple):
    """Mean squared and mean depth error over the image interior."""

    mean_squared: float
    mean: float


def _normalized(v):
    n = np.linalg.norm(v)
    return v / n if n > 0 else v


def px2cam(px):
    """Point on the normalized plane (z = 1) seen at a pixel."""
    p = np.asarray(px, dtype=float)
    return np.array([(p[0] - CX) / FX, (p[1] - CY) / FY, 1.0])


def cam2px(p_cam):
    """Pixel of a point in the camera frame."""
    p = np.asarray(p_cam, dtype=float)
    return np.array([p[0] * FX / p[2] + CX, p[1] * FY / p[2] + CY])


def inside(pt):
    """Whether a pixel lies inside the image, keeping clear of the border."""
    x, y = float(pt[0]), float(pt[1])
    return x >= BORDER and y >= BORDER and x + BORDER < WIDTH and y + BORDER <= HEIGHT


def _bilinear_many(image, xs, ys):
    xi = np.trunc(xs).astype(int)
    yi = np.trunc(ys).astype(int)
    xx = xs - np.floor(xs)
    yy = ys - np.floor(ys)
    d00 = image[yi, xi].astype(float)
    d01 = image[yi, xi + 1].astype(float)
    d10 = image[yi + 1, xi].astype(float)
    d11 = image[yi + 1, xi + 1].astype(float)
    return (
        (1 - xx) * (1 - yy) * d00
        + xx * (1 - yy) * d01
        + (1 - xx) * yy * d10
        + xx * yy * d11
    ) / 255.0


def bilinear(image, pt):
    """Bilinearly interpolated intensity at ``pt``, scaled to ``[0, 1]``."""
    image = np.asarray(image)
    xs = np.array([float(pt[0])])
    ys = np.array([float(pt[1])])
    return float(_bilinear_many(image, xs, ys)[0])


def ncc(ref, curr, pt_ref, pt_curr):
    """Zero-mean normalized cross-correlation of two 7x7 windows.

    The reference window is read at whole pixels, the current one by
    bilinear interpolation.
    """
    ref = np.asarray(ref)
    curr = np.asarray(curr)
    ref_rows = np.trunc(_DY + float(pt_ref[1])).astype(int)
    ref_cols = np.trunc(_DX + float(pt_ref[0])).astype(int)
    values_ref = ref[ref_rows, ref_cols].astype(float) / 255.0
    values_curr = _bilinear_many(curr, _DX + float(pt_curr[0]), _DY + float(pt_curr[1]))
    centred_ref = values_ref - values_ref.sum() / NCC_AREA
    centred_curr = values_curr - values_curr.sum() / NCC_AREA
    numerator = float(centred_ref @ centred_curr)
    denominator1 = float(centred_ref @ centred_ref)
    denominator2 = float(centred_curr @ centred_curr)
    return numerator / math.sqrt(denominator1 * denominator2 + 1e-10)


def epipolar_search(ref, curr, T_C_R, pt_ref, depth_mu, depth_cov):
    """Search the epipolar line of ``pt_ref`` in ``curr`` for its best match.

    The line spans the depths ``depth_mu +/- 3 * depth_cov`` (at least 0.1)
    and is walked from its centre at most 100 pixels each way. Returns an
    :class:`EpipolarMatch`, or ``None`` when no window correlates above 0.85.
    """
    f_ref = _normalized(px2cam(pt_ref))
    px_mean_curr = cam2px(T_C_R * (f_ref * depth_mu))
    d_min = depth_mu - 3 * depth_cov
    d_max = depth_mu + 3 * depth_cov
    if d_min < MIN_DEPTH:
        d_min = MIN_DEPTH
    px_min_curr = cam2px(T_C_R * (f_ref * d_min))
    px_max_curr = cam2px(T_C_R * (f_ref * d_max))

    epipolar_line = px_max_curr - px_min_curr
    direction = _normalized(epipolar_line)
    half_length = min(0.5 * float(np.linalg.norm(epipolar_line)), MAX_HALF_LENGTH)

    best_ncc = -1.0
    best_px = None
    step = -half_length
    while step <= half_length:
        px_curr = px_mean_curr + step * direction
        if inside(px_curr):
            score = ncc(ref, curr, pt_ref, px_curr)
            if score > best_ncc:
                best_ncc = score
                best_px = px_curr
        step += SEARCH_STEP
    if best_ncc < NCC_THRESHOLD or best_px is None:
        return None
    return EpipolarMatch(best_px, direction)


def update_depth_filter(pt_ref, pt_curr, T_C_R, epipolar_direction, depth, depth_cov2):
    """Triangulate a match and fuse it into the depth maps at ``pt_ref``.

    ``depth`` and ``depth_cov2`` are updated in place. Returns the fused
    mean and variance.
    """
    T_R_C = T_C_R.inverse()
    f_ref = _normalized(px2cam(pt_ref))
    f_curr = _normalized(px2cam(pt_curr))

    t = T_R_C.translation
    f2 = T_R_C.rotation * f_curr
    b = np.array([t @ f_ref, t @ f2])
    a00 = f_ref @ f_ref
    a01 = -(f_ref @ f2)
    a10 = -a01
    a11 = -(f2 @ f2)
    with np.errstate(divide="ignore", invalid="ignore"):
        det = np.float64(a00 * a11 - a01 * a10)
        inverse = np.array([[a11, -a01], [-a10, a00]]) / det
        ans = inverse @ b
        xm = ans[0] * f_ref
        xn = t + ans[1] * f2
        depth_estimation = float(np.linalg.norm((xm + xn) / 2.0))

        t_norm = float(np.linalg.norm(t))
        alpha = np.arccos(f_ref @ t / t_norm)
        f_curr_prime = _normalized(px2cam(np.asarray(pt_curr, float) + epipolar_direction))
        beta_prime = np.arccos(f_curr_prime @ (-t) / t_norm)
        gamma = math.pi - alpha - beta_prime
        p_prime = t_norm * np.sin(beta_prime) / np.sin(gamma)
        d_cov2 = float((p_prime - depth_estimation) ** 2)

        row, col = int(pt_ref[1]), int(pt_ref[0])
        mu = float(depth[row, col])
        sigma2 = float(depth_cov2[row, col])
        mu_fuse = float(np.float64(d_cov2 * mu + sigma2 * depth_estimation) / (sigma2 + d_cov2))
        sigma_fuse2 = float(np.float64(sigma2 * d_cov2) / (sigma2 + d_cov2))

    depth[row, col] = mu_fuse
    depth_cov2[row, col] = sigma_fuse2
    return mu_fuse, sigma_fuse2


def update(ref, curr, T_C_R, depth, depth_cov2):
    """Update every unconverged interior pixel of the depth maps in place.

    Pixels whose variance is below 0.1 (converged) or above 10 (diverged)
    are left alone. Returns the number of pixels updated.
    """
    region = depth_cov2[BORDER : HEIGHT - BORDER, BORDER : WIDTH - BORDER]
    active = (region >= MIN_COV) & (region <= MAX_COV)
    ys, xs = np.nonzero(active)
    updated = 0
    for x, y in zip(xs + BORDER, ys + BORDER):
        pt_ref = np.array([float(x), float(y)])
        match = epipolar_search(
            ref, curr, T_C_R, pt_ref, float(depth[y, x]), math.sqrt(depth_cov2[y, x])
        )
        if match is None:
            continue
        update_depth_filter(pt_ref, match.point, T_C_R, match.direction, depth, depth_cov2)
        updated += 1
    return updated


def evaluate_depth(depth_truth, depth_estimate):
    """Mean squared and mean error of the estimate over the image interior."""
    truth = np.asarray(depth_truth, dtype=float)
    estimate = np.asarray(depth_estimate, dtype=float)
    if truth.ndim != 2 or truth.shape != estimate.shape:
        raise ValueError("depth maps must be 2-D and of equal shape")
    rows, cols = truth.shape
    error = (truth - estimate)[BORDER : rows - BORDER, BORDER : cols - BORDER]
    if error.size == 0:
        raise ValueError("depth maps are too small to evaluate")
    return DepthError(float(np.mean(error * error)), float(np.mean(error)))


def read_dataset(path):
    """Read image paths, camera-to-world poses and the reference depth map.

    Returns ``(image_files, poses, reference_depth)``; the reference depth
    is converted from centimetres to metres.
    """
    with open(os.path.join(path, SEQUENCE_FILE), encoding="utf-8") as stream:
        tokens = stream.read().split()
    if len(tokens) % _RECORD_FIELDS:
        raise ValueError(f"{SEQUENCE_FILE}: incomplete record at the end")
    image_files = []
    poses = []
    for start in range(0, len(tokens), _RECORD_FIELDS):
        image, *numbers = tokens[start : start + _RECORD_FIELDS]
        try:
            tx, ty, tz, qx, qy, qz, qw = (float(n) for n in numbers)
        except ValueError as exc:
            raise ValueError(f"{SEQUENCE_FILE}: {exc}") from None
        image_files.append(os.path.join(path, "images", image))
        poses.append(SE3.from_quaternion([qw, qx, qy, qz], [tx, ty, tz]))

    with open(os.path.join(path, REFERENCE_DEPTH_FILE), encoding="utf-8") as stream:
        depth_tokens = stream.read().split()
    needed = HEIGHT * WIDTH
    if len(depth_tokens) < needed:
        raise ValueError(
            f"reference depth holds {len(depth_tokens)} values, expected {needed}"
        )
    try:
        values = np.array([float(v) for v in depth_tokens[:needed]])
    except ValueError as exc:
        raise ValueError(f"reference depth: {exc}") from None
    return image_files, poses, values.reshape(HEIGHT, WIDTH) / 100.0


def _load_gray(path):
    with Image.open(path) as image:
        return np.asarray(image.convert("L"))


def main(argv=None):
    """Estimate the depth of the first image of a dataset from the others."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("dataset", help="path to the test dataset")
    parser.add_argument("--output", default="depth.png")
    args = parser.parse_args(argv)

    try:
        image_files, poses, ref_depth = read_dataset(args.dataset)
        ref = _load_gray(image_files[0])
    except (OSError, ValueError, IndexError):
        print("Reading image files failed!")
        return 1
    print(f"read total {len(image_files)} files.")

    pose_ref = poses[0]
    depth = np.full((HEIGHT, WIDTH), INIT_DEPTH)
    depth_cov2 = np.full((HEIGHT, WIDTH), INIT_COV2)
    for index in range(1, len(image_files)):
        print(f"*** loop {index} ***")
        try:
            curr = _load_gray(image_files[index])
        except OSError:
            continue
        T_C_R = poses[index].inverse() * pose_ref
        update(ref, curr, T_C_R, depth, depth_cov2)
        error = evaluate_depth(ref_depth, depth)
        print(f"Average squared error = {error.mean_squared:g}, average error: {error.mean:g}")

    print("estimation returns, saving depth map ...")
    saved = np.clip(np.rint(depth), 0, 255).astype(np.uint8)
    Image.fromarray(saved).save(args.output)
    print("done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())