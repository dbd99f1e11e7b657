# shopcore/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Back-office or customer account.

    Only the fields the data layer needs: exports are mailed to `email`,
    and orders reference `id`.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    email: str = Field(unique=True, index=True)

    name: str = Field(max_length=100)

    # user | admin
    role: str = Field(default="user", index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
