"""Versioned schema registry and migration engine for user-defined tables."""

__version__ = "0.1.0"
