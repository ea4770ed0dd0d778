[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ksqlkit"
version = "0.1.0"
description = "Map dataclass records to SQL columns and build SELECT, INSERT, UPDATE and DELETE statements for several dialects."
requires-python = ">=3.10"
dependencies = []
keywords = ["sql", "database", "dataclasses", "query-builder"]
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
    "Topic :: Database :: Front-Ends",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ksqlkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
