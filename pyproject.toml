[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zflow"
version = "0.1.0"
description = "A small workflow engine with an in-memory service registry, node-type services and an HTTP front end"
requires-python = ">=3.10"
keywords = [
    "workflow",
    "dag",
    "service-registry",
    "service-discovery",
    "load-balancing",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: Flask",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "flask",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
zflow-bff = "zflow.bff:main"

[tool.hatch.build.targets.wheel]
packages = ["zflow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
