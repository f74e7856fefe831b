[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kokkostools"
version = "0.1.0"
description = "Kernel timers, a space-time stack profiler and report tools for Kokkos-style profiling events"
requires-python = ">=3.10"
dependencies = []
keywords = ["profiling", "kokkos", "kernel timer", "performance", "hpc"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kp-reader = "kokkostools.reader:main"
kp-json-writer = "kokkostools.json_writer:main"

[tool.hatch.build.targets.wheel]
packages = ["kokkostools"]

[tool.pytest.ini_options]
addopts = "-ra"
