[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wavecard"
version = "0.1.0"
description = "Read FAT16/FAT32 volumes from SD card images, parse WAVE files, and decode DHT11 sensor timing"
requires-python = ">=3.10"
dependencies = []
keywords = ["fat16", "fat32", "sd card", "wave", "wav", "dht11", "filesystem"]
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
    "Topic :: System :: Filesystems",
    "Topic :: Multimedia :: Sound/Audio",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["wavecard"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
