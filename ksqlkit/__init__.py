"""Describe SQL records as dataclasses, build statements for several dialects and fake rows in tests."""

__version__ = "0.1.0"

__all__ = ["builder", "modifiers", "queries", "structs", "testhelpers"]