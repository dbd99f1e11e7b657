"""Typed failures raised by repositories and services.

Everything derives from ShopError so the CLI can catch failures uniformly.
RemoteIndexError is the only one services swallow (logged, never re-raised).
"""


class ShopError(Exception):
    """Base class for all shopcore errors."""


class NotFound(ShopError):
    """A requested product, image, taxon or user does not exist."""


class ValidationError(ShopError):
    """Input or a schema constraint was rejected on create/update."""


class UploadError(ShopError):
    """The blob store failed while attaching images to a product."""


class PartialDeleteError(ShopError):
    """A category cascade updated a different number of rows than it counted."""

    def __init__(self, expected: int, deleted: int):
        super().__init__(
            f"category delete touched {deleted} of {expected} products"
        )
        self.expected = expected
        self.deleted = deleted


class RemoteIndexError(ShopError):
    """Pushing a document to the search index failed."""


class BlobStoreError(ShopError):
    """The blob store rejected a store or delete call."""


class MigrationInconsistency(ShopError):
    """A data migration could not update every row it read."""

    def __init__(self, expected: int, updated: int):
        super().__init__(
            f"migration updated {updated} of {expected} rows; rolling back"
        )
        self.expected = expected
        self.updated = updated


class ExportError(ShopError):
    """An admin export could not be generated or delivered."""
