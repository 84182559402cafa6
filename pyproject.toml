[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "assemkit"
version = "0.1.0"
description = "Building blocks for a Motorola-family macro assembler: float encodings, listings, keyword tables, macros and relocation marks"
requires-python = ">=3.10"
dependencies = []
keywords = ["assembler", "68000", "atari", "dsp56001", "relocation", "macro", "listing", "ieee-754"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Assemblers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
assemkit-kwgen = "assemkit.kwgen:main"

[tool.hatch.build.targets.wheel]
packages = ["assemkit"]

[tool.pytest.ini_options]
addopts = "-ra"
