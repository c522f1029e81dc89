[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aquascope"
version = "0.3.8"
description = "Embed interactive ownership and runtime visualizations of Rust code blocks in mdBook chapters"
requires-python = ">=3.11"
dependencies = []
keywords = ["mdbook", "preprocessor", "markdown", "rust", "ownership", "visualization"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Processing :: Markup :: Markdown",
    "Topic :: Documentation",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mdbook-aquascope = "aquascope.preprocessor:main"
aquascope-serve = "aquascope.server:main"

[tool.hatch.build.targets.wheel]
packages = ["aquascope"]

[tool.hatch.build.targets.sdist]
include = ["aquascope", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
