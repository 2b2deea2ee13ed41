[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hotstuff"
version = "0.1.0"
description = "HotStuff-style BFT finality consensus: messages, quorum aggregation, view changes and block finalization"
requires-python = ">=3.10"
keywords = ["consensus", "bft", "hotstuff", "finality", "blockchain", "quorum"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pynacl",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["hotstuff"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
