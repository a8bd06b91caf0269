[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hypervm"
version = "0.1.0"
description = "A small stack-based bytecode VM with a simulated Arduino-style board and a tiny C-subset compiler"
requires-python = ">=3.10"
dependencies = []
keywords = ["virtual machine", "bytecode", "arduino", "interpreter", "compiler", "gpio"]
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
    "Topic :: Software Development :: Interpreters",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
hypervm-compile = "hypervm.compiler:main"

[tool.hatch.build.targets.wheel]
packages = ["hypervm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
