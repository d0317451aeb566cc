[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cachemaster"
version = "0.1.0"
description = "Master node for a distributed cache: tracks cache servers by heartbeat and hands out the server list for consistent hashing."
requires-python = ">=3.10"
dependencies = []
keywords = ["cache", "consistent-hashing", "heartbeat", "distributed", "master"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cachemaster = "cachemaster.manager:main"

[tool.hatch.build.targets.wheel]
packages = ["cachemaster"]

[tool.pytest.ini_options]
addopts = "-ra"
