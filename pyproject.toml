[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xv6kit"
version = "0.1.0"
description = "A small Unix-style file system in Python: on-disk layout, buffer cache, redo log, inodes, pipes, image builder and user tools"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "inode", "buffer-cache", "journaling", "disk-image", "unix"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Education",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
xv6-mkfs = "xv6kit.mkfs:main"
xv6-grep = "xv6kit.grep:main"
xv6-tools = "xv6kit.tools:main"

[tool.hatch.build.targets.wheel]
packages = ["xv6kit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
