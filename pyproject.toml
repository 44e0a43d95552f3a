[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vistrack"
version = "0.1.0"
description = "Feature tracklet management, epipolar geometry and image preprocessing for visual odometry pipelines"
requires-python = ">=3.10"
keywords = [
    "feature tracking",
    "tracklets",
    "stereo",
    "epipolar geometry",
    "computer vision",
    "visual odometry",
    "image preprocessing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pyyaml",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["vistrack"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
