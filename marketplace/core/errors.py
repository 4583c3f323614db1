from __future__ import annotations


class ListingError(Exception):
    pass


class ConfigurationError(ListingError):
    """Unknown entity kind or a kind wired without a field registry."""


class StoreError(ListingError):
    """The row or count query against the database failed."""

    def __init__(self, kind: str, message: str = "Unable to load list"):
        super().__init__(f"{message} ({kind})")
        self.kind = kind
