[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kinkal"
version = "0.1.0"
description = "Kinematic Kalman filter track fitting: fit configuration, hits, material crossings and piecewise trajectory fits"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["kalman filter", "track fitting", "particle physics", "kinematics", "detector"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Physics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kinkal"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
