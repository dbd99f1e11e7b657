# shopcore/models/order.py
import uuid
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

from sqlalchemy import JSON, Column, Integer
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field


class OrderState(IntEnum):
    """
    Order lifecycle, persisted as its integer code.
    """

    CART = 0
    ADDRESS = 1
    DELIVERY = 2
    PAYMENT = 3
    CONFIRMED = 4
    COMPLETE = 5
    CANCELLED = 6


class IntEnumType(TypeDecorator):
    """
    Store an IntEnum as a plain INTEGER column.
    """

    impl = Integer
    cache_ok = True

    def __init__(self, enum_class: type[IntEnum], *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)


# Keys of a structured address, in the order they are printed
ADDRESS_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "address_line_1",
    "address_line_2",
    "city",
    "state",
    "zip_code",
    "country",
    "phone",
)


class Order(SQLModel, table=True):
    """
    Customer order.

    Addresses are stored as JSON objects keyed by ADDRESS_FIELDS.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    number: str = Field(
        max_length=64,
        unique=True,
        index=True,
        description="Human-facing order number",
    )

    special_instructions: str | None = None

    billing_address: dict | None = Field(default=None, sa_column=Column(JSON))
    shipping_address: dict | None = Field(default=None, sa_column=Column(JSON))

    user_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
    )

    state: OrderState = Field(
        default=OrderState.CART,
        sa_column=Column(IntEnumType(OrderState), nullable=False, default=0),
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
