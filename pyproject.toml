[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shelfkit"
version = "0.1.0"
description = "E-book library helpers: MOBI/AZW record and EXTH editing, settings, search text helpers and tags"
requires-python = ">=3.10"
dependencies = []
keywords = ["ebook", "mobi", "azw", "kindle", "library", "exth", "tags"]
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
    "Topic :: Text Processing :: General",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["shelfkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
