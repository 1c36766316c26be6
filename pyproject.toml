[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qdbridge"
version = "0.1.0"
description = "Host-side protocol library for a debug bridge that talks to embedded devices over a framed stream protocol"
requires-python = ">=3.10"
dependencies = []
keywords = ["debug-bridge", "embedded", "protocol", "streams", "device"]
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
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["qdbridge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
