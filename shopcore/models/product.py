# shopcore/models/product.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlmodel import SQLModel, Field


class ProductState(str, Enum):
    ACTIVE = "active"
    IN_ACTIVE = "in_active"
    DRAFT = "draft"
    # Soft-deleted rows; never shown in listings
    DELETED = "deleted"


# States reported by lifecycle aggregates
LIFECYCLE_STATES: tuple[str, ...] = (
    ProductState.ACTIVE.value,
    ProductState.IN_ACTIVE.value,
    ProductState.DRAFT.value,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(SQLModel, table=True):
    """
    Catalog entry.

    A product is either standalone, a parent (has Variation rows naming it
    as parent) or a variant child (named as child by one Variation row).
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=255,
        index=True,
        description="Display name of the product",
    )

    slug: str = Field(
        max_length=255,
        unique=True,
        index=True,
        description="URL-friendly identifier (unique)",
    )

    description: str | None = Field(
        default=None,
        description="Optional long description / HTML",
    )

    selling_price_amount: Decimal = Field(
        default=Decimal("0"),
        max_digits=12,
        decimal_places=2,
        ge=0,
    )
    selling_price_currency: str = Field(default="USD", max_length=3)

    max_retail_price_amount: Decimal = Field(
        default=Decimal("0"),
        max_digits=12,
        decimal_places=2,
        ge=0,
    )
    max_retail_price_currency: str = Field(default="USD", max_length=3)

    # active | in_active | draft | deleted
    state: str = Field(
        default=ProductState.ACTIVE.value,
        max_length=16,
        index=True,
        description="Lifecycle state",
    )

    taxon_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="taxons.id",
        index=True,
    )

    store: str | None = Field(default=None, max_length=100)

    weight: Decimal | None = Field(default=None, max_digits=10, decimal_places=3)
    height: Decimal | None = Field(default=None, max_digits=10, decimal_places=3)

    is_active: bool = Field(
        default=True,
        index=True,
        description="Whether this product is visible on the storefront",
    )

    created_at: datetime = Field(
        default_factory=_utcnow,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(default_factory=_utcnow)
    deleted_at: datetime | None = Field(default=None, index=True)


class Variation(SQLModel, table=True):
    """
    Parent/child link. A child appears in at most one variation.
    """

    __tablename__ = "variations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    parent_product_id: uuid.UUID = Field(foreign_key="products.id", index=True)

    child_product_id: uuid.UUID = Field(
        foreign_key="products.id",
        unique=True,
        index=True,
    )


class StockItem(SQLModel, table=True):
    """
    Per-product stock count.
    """

    __tablename__ = "stock_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)

    count_on_hand: int = Field(default=0)
