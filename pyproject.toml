[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sckit"
version = "2.0.0"
description = "Small systems helpers: RC4 random, size formatting, signal-safe logging, sockets, pipes and pollers"
requires-python = ">=3.10"
dependencies = []
keywords = ["socket", "poll", "epoll", "kqueue", "signal", "pipe", "rc4", "utilities"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sckit"]

[tool.pytest.ini_options]
addopts = "-ra"
