"""In-memory chat room relay."""

__version__ = "0.1.0"
