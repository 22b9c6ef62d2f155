[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "htmlsearcher"
version = "0.1.0"
description = "Full-text search over directories of HTML pages, with a periodic SQLite FTS5 indexer and a small web search form."
requires-python = ">=3.10"
dependencies = [
    "jinja2",
]
keywords = ["search", "full-text", "fts5", "sqlite", "html", "indexer", "static-site", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Indexing/Search",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
htmlsearcher = "htmlsearcher.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["htmlsearcher"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
