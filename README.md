# vslam

Building blocks for visual SLAM, written with NumPy, SciPy and Pillow.

## What is in it

- `vslam.lie`: rotations (`SO3`) and rigid transforms (`SE3`) with `exp`,
  `log`, composition (`*`), `inverse`, `unit_quaternion`, and for `SE3` also
  `hat`, `vee`, `matrix`, `matrix3x4` and `adjoint`. Helpers: `hat`, `vee`,
  `angle_axis_to_matrix`, `quaternion_to_matrix`, `matrix_to_quaternion` and
  `euler_angles_zyx`. Quaternions are `(w, x, y, z)`. SE(3) tangent vectors
  put translation first and rotation second.
- `vslam.curve_fitting`: fits `y = exp(a*x^2 + b*x + c)`. It has
  `generate_data`, `model`, `residuals` and `jacobian`. The solvers are
  `gauss_newton` and `levenberg_marquardt`, and both return a `FitResult`
  with `params`, `cost`, `iterations` and `history`.
- `vslam.trajectory`: `parse_trajectory` and `read_trajectory` read files with
  one pose per line, `time tx ty tz qx qy qz qw`. `rmse` compares two
  trajectories. `pose_axes` gives the origin and axis ends of a pose.
- `vslam.camera`: `Camera`, a pinhole camera with a stereo extrinsic. It
  converts between world, camera and pixel coordinates.
- `vslam.algorithm`: `triangulate`, linear triangulation by SVD. It returns
  `None` when the solution is poorly conditioned. `to_vec2` is also here.
- `vslam.projection`: reprojection residuals with analytic Jacobians:
  `PoseOnlyProjection` and `StereoProjection`. Also `update_pose`, a left
  update `exp(delta) * T`, and `chi2`.
- `vslam.image_geometry`: `distort_point`, `undistort_image`, a
  nearest-neighbour radial-tangential undistortion, and `stereo_point_cloud`,
  which builds points from a given disparity map.
- `vslam.rgbd`: `read_poses` and `back_project`. `join_map` stacks frames
  into one `x, y, z, r, g, b` cloud. The filters are `voxel_filter`, which
  takes voxel centroids, and `statistical_outlier_removal`. `Intrinsics`
  comes with the presets `JOIN_MAP_INTRINSICS` and `DENSE_RGBD_INTRINSICS`.
- `vslam.pose_graph`: `PoseGraph` holds `Vertex` and `Edge` objects.
  `PoseGraph.load` and `PoseGraph.write` read and write the
  `VERTEX_SE3:QUAT` / `EDGE_SE3:QUAT` text format. `optimize` runs
  Levenberg-Marquardt in the Lie algebra. Vertex 0 is held fixed on load.
- `vslam.dense_mapping`: dense depth estimation from one camera along known
  poses. It searches each epipolar line with `epipolar_search`, scores
  matches by NCC (`ncc`), fuses depths with `update_depth_filter` and
  `update`, and checks the result with `evaluate_depth`. `read_dataset`
  loads a dataset directory.
- `vslam.mapping`: `Feature`, `Frame`, `MapPoint` and `Map`. The map keeps a
  sliding window of active keyframes (seven by default). When the window
  overflows it drops a keyframe, and `clean_map` removes landmarks that no
  feature observes.
- `vslam.dataset`: `parse_calibration` and `Dataset`, a reader for stereo
  sequences laid out as `calib.txt`, `image_0/` and `image_1/`. Images and
  intrinsics are halved when read.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Library use

```python
import numpy as np
from vslam.lie import SE3, angle_axis_to_matrix

R = angle_axis_to_matrix(np.pi / 2, [0, 0, 1])
T = SE3(R, [1, 0, 0])
xi = T.log()                                  # (rho, phi)
T_updated = SE3.exp(np.array([1e-4, 0, 0, 0, 0, 0])) * T
p = T * np.array([0.5, 0.0, 0.2])             # transform a point
```

```python
from vslam.algorithm import triangulate
from vslam.lie import SE3

poses = [SE3(), SE3(translation=[0, -10, 0])]
world = triangulate(poses, points)            # points on the normalized plane
```

## Commands

Print worked examples of rotations and transforms. The optional section is
`lie`, `geometry`, `transform` or `all` (the default):

```
vslam-lie-demo
vslam-lie-demo geometry
```

Fit the exponential curve to synthetic noisy data. The options are
`--method gauss-newton|levenberg-marquardt`, `--seed` and `--iterations`:

```
vslam-curve-fit
vslam-curve-fit --method levenberg-marquardt --seed 3
```

Compare an estimated trajectory with ground truth and print the RMSE. The
defaults are `./example/groundtruth.txt` and `./example/estimated.txt`:

```
vslam-trajectory groundtruth.txt estimated.txt
```

Optimize a pose graph. The options are `--output`, default `result.g2o`, and
`--iterations`, default 30:

```
vslam-pose-graph sphere.g2o
```

Estimate the depth of the first image of a dataset from the images that
follow it, and save it with `--output` (default `depth.png`):

```
vslam-dense-mapping path_to_test_dataset
```

## What it does not do

- Nothing is drawn or shown on screen. Trajectories, point clouds, depth maps
  and matches are returned as arrays or printed as numbers.
- There is no feature detector, optical-flow tracker, stereo matcher or
  bag-of-words vocabulary. `stereo_point_cloud` expects a disparity map that
  is already computed.
- `vslam.mapping` and `vslam.dataset` give the data structures and the
  sequence reader, but no tracking front end, no bundle-adjustment back end
  and no command that runs a whole visual odometry over a sequence.
- Point clouds are not saved in any point-cloud file format, and there is no
  meshing or octree mapping.