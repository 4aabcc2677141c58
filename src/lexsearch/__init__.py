"""lexsearch: full-text search and feedback ranking for short legal documents."""

__version__ = "0.1.0"
