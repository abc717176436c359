[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "overbatch"
version = "0.1.0"
description = "Batch overwriting of local files: filtered directory walks, gzip and in-memory backlogs, cancellation and retries"
requires-python = ">=3.10"
dependencies = []
keywords = ["batch", "filesystem", "backlog", "gzip", "retry", "overwrite", "cancellation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["overbatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
