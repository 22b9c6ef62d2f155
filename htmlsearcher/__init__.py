"""Full-text search over HTML pages: an SQLite FTS5 indexer and a WSGI search form."""

__version__ = "0.1.0"