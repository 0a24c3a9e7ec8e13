[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "statehouse"
version = "0.1.0"
description = "In-memory home device store, whole-house state derivation and MQTT publishing of derived events and state."
requires-python = ">=3.10"
keywords = ["home-automation", "mqtt", "occupancy", "smart-home", "state"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
    "Typing :: Typed",
]
dependencies = [
    "paho-mqtt>=2.0",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["statehouse"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
