"""Versioned database migrations from annotated SQL files and registered functions."""

__version__ = "0.1.0"
__all__ = [
    "cfg",
    "dialect",
    "dialectquery",
    "lock",
    "logger",
    "migrate",
    "migration",
    "migrationstats",
    "sqlparser",
]