[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eventapi"
version = "0.1.0"
description = "Small HTTP API for recording and querying user events backed by PostgreSQL"
requires-python = ">=3.10"
keywords = ["http", "api", "events", "analytics", "postgresql", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Database :: Front-Ends",
]
dependencies = [
    "pyyaml",
    "werkzeug",
    "sqlalchemy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
eventapi = "eventapi.cli:main"
eventapi-db = "eventapi.cli:database_main"

[tool.hatch.build.targets.wheel]
packages = ["eventapi"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
