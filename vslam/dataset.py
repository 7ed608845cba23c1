"""Reading stereo image sequences and their calibration in the KITTI layout.

A dataset directory holds ``calib.txt`` with four projection matrices and
the images ``image_0/NNNNNN.png`` (left) and ``image_1/NNNNNN.png`` (right).
Images are halved in size when read, and so are the intrinsics.
"""

from __future__ import annotations

import logging
import os

import numpy as np
from PIL import Image

from vslam.camera import Camera
from vslam.lie import SE3, SO3
from vslam.mapping import Frame

log = logging.getLogger(__name__)

CALIBRATION_FILE = "calib.txt"
CAMERA_COUNT = 4
_PROJECTION_VALUES = 12
SCALE = 0.5


def parse_calibration(text):
    """Cameras from the text of a calibration file.

    Each of the four entries is a name followed by twelve numbers, a 3x4
    projection matrix row by row. The intrinsics are scaled by one half.
    """
    tokens = text.split()
    per_camera = 1 + _PROJECTION_VALUES
    if len(tokens) < CAMERA_COUNT * per_camera:
        raise ValueError(
            f"calibration needs {CAMERA_COUNT * per_camera} values, got {len(tokens)}"
        )
    cameras = []
    for index in range(CAMERA_COUNT):
        chunk = tokens[index * per_camera + 1 : (index + 1) * per_camera]
        try:
            projection = np.array([float(v) for v in chunk]).reshape(3, 4)
        except ValueError as exc:
            raise ValueError(f"camera {index}: {exc}") from None
        k = projection[:, :3]
        t = np.linalg.inv(k) @ projection[:, 3]
        k = k * SCALE
        camera = Camera(
            k[0, 0], k[1, 1], k[0, 2], k[1, 2], float(np.linalg.norm(t)), SE3(SO3(), t)
        )
        log.info("Camera %d extrinsics: %s", index, t)
        cameras.append(camera)
    return cameras


def _load_gray(path):
    try:
        with Image.open(path) as image:
            return np.asarray(image.convert("L"))
    except OSError:
        return None


def _halve(image):
    rows, cols = image.shape[:2]
    return image[::2, ::2][: round(rows * SCALE), : round(cols * SCALE)]


class Dataset:
    """A stereo sequence on disk, read one frame at a time."""

    def __init__(self, path):
        self.path = path
        self.current_image_index = 0
        self.cameras = []

    def open(self):
        """Read the calibration and rewind to the first image."""
        with open(os.path.join(self.path, CALIBRATION_FILE), encoding="utf-8") as stream:
            self.cameras = parse_calibration(stream.read())
        self.current_image_index = 0
        return self

    def _image_path(self, camera):
        return os.path.join(
            self.path, f"image_{camera}", f"{self.current_image_index:06d}.png"
        )

    def next_frame(self):
        """The next stereo frame, or ``None`` when its images cannot be read."""
        left = _load_gray(self._image_path(0))
        right = _load_gray(self._image_path(1))
        if left is None or right is None:
            log.warning("cannot find images at index %d", self.current_image_index)
            return None
        frame = Frame.create()
        frame.left_img = _halve(left)
        frame.right_img = _halve(right)
        self.current_image_index += 1
        return frame

    def camera(self, camera_id):
        """The camera with the given index."""
        if camera_id < 0 or camera_id >= len(self.cameras):
            raise IndexError(f"no camera {camera_id}")
        return self.cameras[camera_id]