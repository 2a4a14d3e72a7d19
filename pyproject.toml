[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "coheredb"
version = "0.1.0"
description = "A small distributed key-value store: storage servers behind a manager that routes keys over a consistent hash ring"
requires-python = ">=3.11"
dependencies = [
    "grpcio",
]
keywords = [
    "key-value",
    "database",
    "distributed",
    "consistent-hashing",
    "grpc",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
coheredb-manager = "coheredb.manager_main:main"
coheredb-server = "coheredb.server_main:main"
coheredb-client = "coheredb.client:main"

[tool.hatch.build.targets.wheel]
packages = ["coheredb"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
