# shopcore/schemas/product.py
import uuid
from decimal import Decimal
from typing import Any, Literal

from pydantic import ConfigDict, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import SQLModel, Field

from shopcore.models.product import LIFECYCLE_STATES, Product

ProductStateName = Literal["active", "in_active", "draft"]


class Money(SQLModel):
    """
    Amount + ISO currency pair.
    """

    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


class ProductCreate(SQLModel):
    """
    Payload for creating a product.

    - slug is optional: if omitted, generated from `name`.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    slug: str | None = None
    description: str | None = None
    selling_price: Money
    max_retail_price: Money
    state: ProductStateName = "draft"
    taxon_id: uuid.UUID | None = None
    store: str | None = None
    weight: Decimal | None = Field(default=None, ge=0)
    height: Decimal | None = Field(default=None, ge=0)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("slug cannot be empty if provided")
        return v


class ProductUpdate(SQLModel):
    """
    Partial update payload for products.
    All fields are optional.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=255)
    slug: str | None = None
    description: str | None = None
    selling_price: Money | None = None
    max_retail_price: Money | None = None
    state: ProductStateName | None = None
    taxon_id: uuid.UUID | None = None
    store: str | None = None
    weight: Decimal | None = Field(default=None, ge=0)
    height: Decimal | None = Field(default=None, ge=0)
    is_active: bool | None = None

    @field_validator("name", "slug")
    @classmethod
    def not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


# Columns callers may filter on in list_products
FILTERABLE_FIELDS: frozenset[str] = frozenset(
    {"state", "taxon_id", "store", "is_active", "slug"}
)
SORTABLE_FIELDS: frozenset[str] = frozenset(
    {"name", "created_at", "updated_at", "selling_price_amount", "state"}
)


class ProductFilter(SQLModel):
    """
    Paginated, filterable product listing query.

    `filters` maps a column from FILTERABLE_FIELDS to the exact value it
    must equal; `search_term` matches names case-insensitively.
    """

    model_config = ConfigDict(extra="forbid")

    search_term: str | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    sort_field: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1, le=200)

    @field_validator("filters")
    @classmethod
    def known_filters(cls, v: dict[str, Any]) -> dict[str, Any]:
        unknown = set(v) - FILTERABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported filter fields: {sorted(unknown)}")

        # Bind values as the column type ("false" -> False, uuid string -> UUID)
        coerced: dict[str, Any] = {}
        for name, value in v.items():
            adapter = TypeAdapter(Product.model_fields[name].annotation)
            try:
                coerced[name] = adapter.validate_python(value)
            except PydanticValidationError as exc:
                raise ValueError(f"invalid value for filter {name!r}: {value!r}") from exc
        return coerced

    @field_validator("sort_field")
    @classmethod
    def known_sort(cls, v: str) -> str:
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"unsupported sort field: {v}")
        return v


class ProductPage(SQLModel):
    items: list[Any]
    total: int
    page: int
    per_page: int


class ProductStateCount(SQLModel):
    state: str
    count: int

    @field_validator("state")
    @classmethod
    def lifecycle_state(cls, v: str) -> str:
        if v not in LIFECYCLE_STATES:
            raise ValueError(f"unexpected lifecycle state: {v}")
        return v


# ----- Images -----


class NewImage(SQLModel):
    """
    A binary upload to store and attach.
    """

    content_type: str
    data: bytes
    filename: str | None = None
    is_default: bool = False


class KeptImage(SQLModel):
    """
    Reference to an image already attached that must stay attached.
    """

    id: uuid.UUID
    is_default: bool = False


ImageEntry = NewImage | KeptImage


class ImageDeleteResult(SQLModel):
    """
    Outcome of delete_image.

    The database rows are always gone when this is returned;
    `blob_removed` is False when storage cleanup is still pending.
    """

    product_id: uuid.UUID
    image_id: uuid.UUID
    blob_removed: bool
