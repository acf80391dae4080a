"""Errors raised by the durable store."""


class StoreError(Exception):
    """A read or write against the SQLite store failed."""
