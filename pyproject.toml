[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vslam"
version = "0.1.0"
description = "Visual SLAM building blocks: Lie groups, camera models, triangulation, curve fitting, pose graphs, point clouds and dense depth estimation"
requires-python = ">=3.10"
keywords = [
    "slam",
    "visual-odometry",
    "lie-group",
    "se3",
    "pose-graph",
    "triangulation",
    "point-cloud",
    "depth-estimation",
    "computer-vision",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Scientific/Engineering :: Mathematics",
]
dependencies = [
    "numpy",
    "scipy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
vslam-lie-demo = "vslam.lie:main"
vslam-curve-fit = "vslam.curve_fitting:main"
vslam-trajectory = "vslam.trajectory:main"
vslam-pose-graph = "vslam.pose_graph:main"
vslam-dense-mapping = "vslam.dense_mapping:main"

[tool.hatch.build.targets.wheel]
packages = ["vslam"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
