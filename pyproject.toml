[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sadnav"
version = "0.1.0"
description = "Inertial navigation, state estimation and point-cloud nearest-neighbour tools for vehicle localisation"
requires-python = ">=3.10"
keywords = [
    "slam",
    "imu",
    "eskf",
    "kalman filter",
    "preintegration",
    "kd-tree",
    "octree",
    "point cloud",
    "navigation",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sadnav"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
