# shopcore/models/taxon.py
import uuid
from datetime import datetime

from sqlmodel import SQLModel, Field


class Taxon(SQLModel, table=True):
    """
    Category tree node. Roots have parent_id = None.
    """

    __tablename__ = "taxons"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(max_length=100)

    parent_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="taxons.id",
        index=True,
    )

    deleted_at: datetime | None = None
