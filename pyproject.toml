[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kratt"
version = "0.1.0"
description = "Automated pull request worker that runs an AI agent, lint and tests, and reports back"
requires-python = ">=3.10"
dependencies = []
keywords = ["git", "github", "pull-request", "automation", "agent", "worktree"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Version Control :: Git",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kratt = "kratt.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["kratt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
