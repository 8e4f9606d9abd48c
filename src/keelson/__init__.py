"""Keelson - schema-driven content engine.

Site definitions (collections, globals and blocks) drive the relational
schema, the runtime query surface and the recursive loading and saving of
nested content.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
