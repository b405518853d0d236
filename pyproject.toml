[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "danmubot"
version = "0.1.0"
description = "Building blocks of a chat robot for Bilibili live rooms: stream framing, welcomes, gift thanks, PK notices, sign-in, statistics, keyword and AI replies."
requires-python = ">=3.10"
keywords = ["bilibili", "danmaku", "danmu", "live", "chat", "bot"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Natural Language :: Chinese (Simplified)",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "pyyaml>=6.0",
    "requests>=2.28",
    "brotli>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["danmubot"]

[tool.hatch.build.targets.sdist]
include = ["danmubot", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
