"""Reading camera trajectories and measuring how far two of them differ.

A trajectory file holds one pose per line as
``time tx ty tz qx qy qz qw``, the quaternion with its real part last.
"""

from __future__ import annotations

import argparse
import math
import sys

import numpy as np

from vslam.lie import SE3

DEFAULT_GROUNDTRUTH = "./example/groundtruth.txt"
DEFAULT_ESTIMATED = "./example/estimated.txt"

_FIELDS = 8


def parse_trajectory(lines):
    """Parse trajectory lines into a list of SE3 poses.

    Blank lines and lines starting with ``#`` are skipped; any other line
    must hold exactly eight numbers.
    """
    poses = []
    for number, line in enumerate(lines, 1):
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        fields = text.split()
        if len(fields) != _FIELDS:
            raise ValueError(
                f"line {number}: expected {_FIELDS} values, got {len(fields)}"
            )
        try:
            values = [float(field) for field in fields]
        except ValueError as exc:
            raise ValueError(f"line {number}: {exc}") from None
        _, tx, ty, tz, qx, qy, qz, qw = values
        poses.append(SE3.from_quaternion([qw, qx, qy, qz], [tx, ty, tz]))
    return poses


def read_trajectory(path):
    """Read the trajectory file at ``path``."""
    with open(path, encoding="utf-8") as stream:
        return parse_trajectory(stream)


def rmse(groundtruth, estimated):
    """Root mean square of the pose errors ``|log(gt^-1 * est)|``."""
    groundtruth = list(groundtruth)
    estimated = list(estimated)
    if not groundtruth or not estimated:
        raise ValueError("trajectories must not be empty")
    if len(groundtruth) != len(estimated):
        raise ValueError(
            f"trajectories differ in length: {len(groundtruth)} and {len(estimated)}"
        )
    total = sum(
        float(np.linalg.norm((truth.inverse() * guess).log())) ** 2
        for truth, guess in zip(groundtruth, estimated)
    )
    return math.sqrt(total / len(estimated))


def pose_axes(pose, length=0.1):
    """Origin and the ends of the three axes of ``pose``, drawn ``length`` long.

    Returns a 4x3 array: the origin, then the ends of the x, y and z axes,
    all in world coordinates.
    """
    local = np.vstack((np.zeros(3), length * np.eye(3)))
    return pose * local


def main(argv=None):
    """Compare an estimated trajectory with the ground truth and print the RMSE."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("groundtruth", nargs="?", default=DEFAULT_GROUNDTRUTH)
    parser.add_argument("estimated", nargs="?", default=DEFAULT_ESTIMATED)
    args = parser.parse_args(argv)
    try:
        groundtruth = read_trajectory(args.groundtruth)
        estimated = read_trajectory(args.estimated)
    except OSError as exc:
        print(f"trajectory {exc.filename} not found.", file=sys.stderr)
        return 1
    print(f"read total {len(groundtruth)} and {len(estimated)} pose entries")
    try:
        error = rmse(groundtruth, estimated)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"RMSE = {error:g}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())