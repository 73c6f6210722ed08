"""CLI commands package."""

from . import (
    database,
    migrations,
    schemas,
)

__all__ = [
    'database',
    'migrations',
    'schemas',
]
