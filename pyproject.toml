[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "arcir"
version = "0.1.0"
description = "A region-based intermediate representation with a node builder, task graph and pass manager"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "ir", "intermediate-representation", "pass-manager", "type-promotion"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["arcir"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
