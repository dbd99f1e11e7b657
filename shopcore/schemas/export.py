# shopcore/schemas/export.py
from enum import Enum

from sqlmodel import SQLModel


class ExportEntity(str, Enum):
    ORDER = "order"
    PRODUCT = "product"


class ExportFormat(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"


class ExportResult(SQLModel):
    """
    What an export produced and where it was written.
    """

    entity: ExportEntity
    format: ExportFormat
    path: str
    columns: list[str]
    row_count: int
