import numpy as np
import pytest
from PIL import Image

from vslam.dataset import Dataset, parse_calibration


def _row(name, tx):
    values = [700.0, 0.0, 600.0, tx, 0.0, 700.0, 180.0, 0.0, 0.0, 0.0, 1.0, 0.0]
    return name + " " + " ".join(repr(v) for v in values)


CALIB = "\n".join(
    [_row("P0:", 0.0), _row("P1:", -350.0), _row("P2:", 0.0), _row("P3:", 0.0)]
) + "\n"


def test_parse_calibration_scales_intrinsics():
    cameras = parse_calibration(CALIB)
    assert len(cameras) == 4
    left = cameras[0]
    assert left.fx == pytest.approx(350.0)
    assert left.fy == pytest.approx(left.fx)
    assert left.baseline == pytest.approx(0.0)


def test_parse_calibration_baseline_from_translation():
    right = parse_calibration(CALIB)[1]
    assert right.baseline == pytest.approx(0.5)
    assert np.allclose(right.pose.translation, [-0.5, 0.0, 0.0])
    assert np.allclose(right.pose.rotation_matrix, np.eye(3))


def test_parse_calibration_rejects_short_text():
    with pytest.raises(ValueError):
        parse_calibration(_row("P0:", 0.0))


def test_parse_calibration_rejects_bad_numbers():
    with pytest.raises(ValueError):
        parse_calibration(CALIB.replace("700.0", "abc", 1))


def _write_dataset(root, count, shape=(6, 8)):
    (root / "calib.txt").write_text(CALIB, encoding="utf-8")
    images = []
    for side in (0, 1):
        folder = root / f"image_{side}"
        folder.mkdir()
        for index in range(count):
            data = (np.arange(shape[0] * shape[1]).reshape(shape) + 10 * index + side).astype(
                np.uint8
            )
            Image.fromarray(data).save(folder / f"{index:06d}.png")
            images.append(data)
    return images


def test_open_missing_calibration(tmp_path):
    with pytest.raises(FileNotFoundError):
        Dataset(str(tmp_path)).open()


def test_camera_lookup(tmp_path):
    _write_dataset(tmp_path, 0)
    dataset = Dataset(str(tmp_path)).open()
    assert dataset.camera(1).baseline == pytest.approx(0.5)
    with pytest.raises(IndexError):
        dataset.camera(4)
    with pytest.raises(IndexError):
        dataset.camera(-1)


def test_next_frame_halves_images(tmp_path):
    _write_dataset(tmp_path, 1)
    original = np.asarray(Image.open(tmp_path / "image_0" / "000000.png"))
    dataset = Dataset(str(tmp_path)).open()
    frame = dataset.next_frame()
    assert frame.left_img.shape == (3, 4)
    assert frame.right_img.shape == (3, 4)
    assert frame.left_img[1, 1] == original[2, 2]
    assert frame.left_img[2, 3] == original[4, 6]
    assert dataset.current_image_index == 1


def test_next_frame_odd_size(tmp_path):
    _write_dataset(tmp_path, 1, shape=(5, 7))
    frame = Dataset(str(tmp_path)).open().next_frame()
    assert frame.left_img.shape == (round(5 * 0.5), round(7 * 0.5))


def test_frames_run_out(tmp_path):
    _write_dataset(tmp_path, 2)
    dataset = Dataset(str(tmp_path)).open()
    first = dataset.next_frame()
    second = dataset.next_frame()
    assert second.id == first.id + 1
    assert dataset.next_frame() is None
    assert dataset.current_image_index == 2


def test_missing_right_image_gives_none(tmp_path):
    _write_dataset(tmp_path, 1)
    (tmp_path / "image_1" / "000000.png").unlink()
    dataset = Dataset(str(tmp_path)).open()
    assert dataset.next_frame() is None
    assert dataset.current_image_index == 0