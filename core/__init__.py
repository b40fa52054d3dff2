"""Core module - shared building blocks for the posting service.

Configuration, error taxonomy, enums, SQLite helpers, observability,
credential security and the invalidation event bus live here. Provider
specifics (Xero, Sage, QuickBooks, ...) belong in /connectors/.
"""

__version__ = "1.0.0"
