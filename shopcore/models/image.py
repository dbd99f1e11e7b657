# shopcore/models/image.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Image(SQLModel, table=True):
    """
    Stored image asset. Linked to exactly one product via product_images.
    """

    __tablename__ = "images"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=512,
        description="Object path inside the storage bucket",
    )

    url: str | None = Field(
        default=None,
        description="Public URL served from Supabase Storage",
    )

    is_default: bool = Field(default=False)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class ProductImageLink(SQLModel, table=True):
    """
    Association between products and images.
    """

    __tablename__ = "product_images"

    product_id: uuid.UUID = Field(foreign_key="products.id", primary_key=True)
    image_id: uuid.UUID = Field(foreign_key="images.id", primary_key=True)


class BlobDeletion(SQLModel, table=True):
    """
    Outbox row for a blob that must still be removed from storage.

    Written in the same transaction that drops the image row, deleted
    once the store confirms removal.
    """

    __tablename__ = "pending_blob_deletions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    reference: str = Field(max_length=512)

    product_id: uuid.UUID = Field(index=True)

    attempts: int = Field(default=0, ge=0)

    last_error: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
