[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rocsift"
version = "0.1.0"
description = "Inspect AMD GPU state through KFD, DRM and debugfs: runlists, processes and node topology"
requires-python = ">=3.10"
dependencies = []
keywords = ["gpu", "kfd", "drm", "pm4", "runlist", "debugging", "rocm"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Debuggers",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rocsift-tools = "rocsift.launcher:main"
rocsift-dumprls = "rocsift.dumprls:main"
rocsift-pskfd = "rocsift.pskfd:main"

[tool.hatch.build.targets.wheel]
packages = ["rocsift"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
