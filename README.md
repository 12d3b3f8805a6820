# sadnav

Building blocks for vehicle localisation, written on top of numpy:

- Lie-group helpers for rotations and rigid transforms
- direct IMU integration
- static IMU initialisation
- an 18-dimensional error-state Kalman filter
- IMU preintegration and its inertial residual with Jacobians
- nearest-neighbour search over point clouds (brute force, grid, kd-tree, octree)
- bird's-eye and range images of point clouds

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Conventions

- Rotations are 3x3 numpy arrays.
- Quaternions are `(w, x, y, z)` arrays.
- Point clouds are arrays of shape `(N, 3)`.
- A match is a pair `(reference_index, query_index)`. When no neighbour was found, `sadnav.bfnn.INVALID_ID` (`-1`) is used in its place.
- Images are `uint8` arrays of shape `(rows, cols, 3)` in blue, green, red channel order.

## Modules

### `sadnav.lie`

Functions:

- `hat`, `vee`
- `so3_exp`, `so3_log`
- `right_jacobian`, `right_jacobian_inv`
- `rot_z`
- `rotation_to_quaternion`, `quaternion_to_rotation`

`SE3` holds a `rotation` and a `translation`. It has:

- `inverse()`
- `matrix()`
- `from_matrix()`
- `transform()`, which takes one point or an `(N, 3)` array
- composition with `@`

### `sadnav.state`

Dataclasses for sensor readings and the state:

- `IMU` (`timestamp`, `gyro`, `acce`)
- `Odom` (`timestamp`, `left_pulse`, `right_pulse`)
- `GNSS` (`unix_time`, `lat_lon_alt`, `heading`, `heading_valid`, `utm_pose`, `utm_valid`)
- `NavState` (`timestamp`, `rotation`, `position`, `velocity`, `bg`, `ba`), which has `se3()`

### `sadnav.integration`

`IMUIntegration` integrates readings with known biases and gravity, using `add_imu()` and `nav_state()`. A reading whose interval to the previous one is not within (0, 0.1) s only advances the clock.

### `sadnav.static_imu_init`

`StaticIMUInit` is configured with `StaticIMUInitOptions`. It collects readings through `add_imu()` and, optionally, `add_odom()`. Odometry is used to check that the vehicle stands still.

Once `init_success` is true, these attributes hold the estimates:

- `init_bg`, `init_ba`
- `cov_gyro`, `cov_acce`
- `gravity`

### `sadnav.motion`

`simulate_circular_motion()` yields a `NavState` per step for a vehicle that drives forward while turning about z. The rotation is updated either with the SO(3) exponential or with a first-order quaternion step.

### `sadnav.eskf`

`ESKF` is configured with `ESKFOptions`. Its error state is ordered p, v, theta, bg, ba, g.

Methods:

- `set_initial_conditions()`
- `predict()` from an `IMU`
- `observe_wheel_speed()` from an `Odom`
- `observe_gps()` from a converted `GNSS`. The first reading only sets the pose; later readings need a valid heading, otherwise `ValueError` is raised.
- `observe_se3()`
- `nominal_state()`, `nominal_se3()`
- `set_x()`, `set_cov()`
- `gravity()`

### `sadnav.preintegration`

`IMUPreintegration` is configured with `PreintegrationOptions`. It has:

- `integrate(imu, dt)`
- `predict(start, grav)`
- bias-corrected `delta_rotation()`, `delta_velocity()` and `delta_position()`

It also keeps the bias Jacobians (`dR_dbg`, `dV_dbg`, `dV_dba`, `dP_dbg`, `dP_dba`) and the 9x9 covariance `cov`.

### `sadnav.inertial_edge`

`EdgeInertial` evaluates the residual between two frames linked by a preintegration. The residual is ordered rotation, velocity, position.

Methods:

- `compute_error()`
- `jacobians()`, for the first pose, velocity, gyro bias and accelerometer bias, and the second pose and velocity
- `hessian()`, the 24x24 matrix `J^T * information * J`

### `sadnav.bfnn`

- `bfnn_point`
- `bfnn_point_k`
- `bfnn_cloud`
- `bfnn_cloud_mt`, which spreads the queries over threads
- `bfnn_cloud_mt_k`

### `sadnav.gridnn`

`GridNN(resolution, nearby_type, dim)` buckets points into 2D or 3D cells. `NearbyType` selects which neighbour cells are searched:

- 2D: `CENTER`, `NEARBY4`, `NEARBY8`
- 3D: `CENTER`, `NEARBY6`

Methods:

- `set_point_cloud()`
- `get_closest_point()`
- `get_closest_point_for_cloud()`, which keeps only the queries that found a neighbour
- `get_closest_point_for_cloud_mt()`, which gives one match per query

### `sadnav.kdtree`

`KdTree` has:

- `build_tree()`
- `get_closest_point(pt, k)`
- `get_closest_point_mt(cloud, k)`
- `set_enable_ann()`
- `clear()`
- `describe()`
- `size`

Approximate search is on by default, with `alpha = 0.1`. Call `set_enable_ann(False)` for exact results. Asking for more neighbours than the tree has leaves raises `ValueError`.

### `sadnav.octo_tree`

`OctoTree` has the same search interface as `KdTree`, with `set_approximate()` in place of `set_enable_ann()`. Search is exact by default. `Box3D` provides `inside()` and `distance()`.

### `sadnav.bird_eye`

- `generate_bev_image()` draws the points within a height band onto a top-down image.
- `save_image()` writes an image to a file. The format follows the file suffix.

### `sadnav.range_image`

- `generate_range_image()` builds an azimuth-by-elevation image. The hue of each pixel encodes the horizontal range.
- `hsv_to_bgr()` converts 8-bit HSV images, with hue in 0..180.

## Examples

```python
import numpy as np
from sadnav.bfnn import bfnn_point_k
from sadnav.kdtree import KdTree

cloud = np.random.default_rng(0).random((1000, 3))
tree = KdTree()
tree.build_tree(cloud)
tree.set_enable_ann(False)
print(tree.get_closest_point(cloud[0], 5))
print(bfnn_point_k(cloud, cloud[0], 5))
```

```python
import numpy as np
from sadnav.preintegration import IMUPreintegration
from sadnav.state import IMU, NavState

pre = IMUPreintegration()
for i in range(1, 101):
    pre.integrate(IMU(0.01 * i, [0.0, 0.0, np.pi], [0.0, 0.0, 9.8]), 0.01)
end = pre.predict(NavState(0.0), [0.0, 0.0, -9.8])
print(end.position, end.velocity)
```

```python
import numpy as np
from sadnav.bird_eye import generate_bev_image, save_image

points = np.random.default_rng(1).uniform([-10, -10, 0], [10, 10, 3], (5000, 3))
save_image(generate_bev_image(points, resolution=0.1), "bev.png")
```

## What the package does not do

This is a library only. It does not provide:

- command-line programs
- a viewer window
- readers for point-cloud files (such as PCD), sensor logs or recorded datasets
- conversion from latitude and longitude to UTM coordinates
- a graph optimiser: `EdgeInertial` gives residuals, Jacobians and Hessians, but nothing in the package solves for the states
- map-based lidar localisation

To use any of these, load your data into numpy arrays and the `sadnav.state` records yourself, then call the modules above.