[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fcgikit"
version = "0.1.0"
description = "FastCGI protocol records, request environments, output streams, PostgreSQL parameter encoding and a small HTTP client"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "fastcgi",
    "fcgi",
    "cgi",
    "http",
    "web",
    "protocol",
    "postgresql",
]
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
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: CGI Tools/Libraries",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fcgikit"]

[tool.hatch.build.targets.sdist]
include = ["fcgikit", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
