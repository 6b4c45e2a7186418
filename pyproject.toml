[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "addonkit"
version = "0.1.0"
description = "Tools for managing cluster addons: manifest channels and repositories, common addon status, patches and a smoke-test runner."
requires-python = ">=3.10"
keywords = ["kubernetes", "operator", "addon", "manifest", "declarative", "channel"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml>=6.0",
    "semver>=3.0",
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
addonkit-smoketest = "addonkit.smoketest:main"

[tool.hatch.build.targets.wheel]
packages = ["addonkit"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
