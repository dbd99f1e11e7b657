# shopcore/services/export_service.py
import csv
import logging
import os
import smtplib
import uuid
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from openpyxl import Workbook
from sqlmodel import Session

from shopcore.core.config import get_settings
from shopcore.core.email_client import send_email
from shopcore.core.errors import ExportError, NotFound
from shopcore.models.order import ADDRESS_FIELDS, Order
from shopcore.models.product import Product
from shopcore.models.user import User
from shopcore.repositories.order_repo import OrderRepository
from shopcore.repositories.product_repo import ProductRepository
from shopcore.repositories.user_repo import UserRepository
from shopcore.schemas.export import ExportEntity, ExportFormat, ExportResult

logger = logging.getLogger(__name__)

# Fixed, per-entity column allow-list. Callers cannot pick columns.
EXPORT_COLUMNS: dict[ExportEntity, tuple[str, ...]] = {
    ExportEntity.ORDER: (
        "id",
        "number",
        "special_instructions",
        "billing_address",
        "shipping_address",
        "created_at",
        "updated_at",
        "user_id",
        "state",
    ),
    ExportEntity.PRODUCT: (
        "id",
        "name",
        "slug",
        "state",
        "max_retail_price",
        "selling_price",
        "taxon_id",
        "weight",
        "height",
        "store",
        "is_active",
    ),
}

CONTENT_TYPES: dict[ExportFormat, str] = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def format_address(address: dict | None) -> str | None:
    """
    Flatten a structured address into one space-joined line.
    """
    if address is None:
        return None
    parts = [str(address[key]) for key in ADDRESS_FIELDS if address.get(key)]
    return " ".join(parts)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return value.name.lower()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def order_row(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "number": order.number,
        "special_instructions": order.special_instructions,
        "billing_address": format_address(order.billing_address),
        "shipping_address": format_address(order.shipping_address),
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "user_id": order.user_id,
        "state": order.state,
    }


def product_row(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "state": product.state,
        "max_retail_price": f"{_cell(product.max_retail_price_amount)} {product.max_retail_price_currency}",
        "selling_price": f"{_cell(product.selling_price_amount)} {product.selling_price_currency}",
        "taxon_id": product.taxon_id,
        "weight": product.weight,
        "height": product.height,
        "store": product.store,
        "is_active": product.is_active,
    }


def write_csv(rows: Iterable[list[str]], columns: tuple[str, ...], path: str) -> int:
    """
    Tab-separated, header first. Returns the number of data rows written.
    """
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh, delimiter="\t", lineterminator="\n")
        writer.writerow(columns)
        for row in rows:
            writer.writerow(row)
            count += 1
    return count


def write_xlsx(
    rows: Iterable[list[str]],
    columns: tuple[str, ...],
    path: str,
    sheet_title: str,
) -> int:
    """
    One sheet: header row then data rows. Returns the number of data rows.
    """
    workbook = Workbook(write_only=True)
    sheet = workbook.create_sheet(title=sheet_title)
    sheet.append(list(columns))
    count = 0
    for row in rows:
        sheet.append(row)
        count += 1
    workbook.save(path)
    return count


class ExportService:
    """
    Admin data exports (orders / products) delivered by email.

    Rows are streamed from the session's open transaction in batches and
    written straight to a file in EXPORT_DIR, which is then mailed to the
    requesting user as an attachment.
    """

    def __init__(
        self,
        product_repo: ProductRepository,
        order_repo: OrderRepository,
        user_repo: UserRepository,
        mailer: Callable[..., None] = send_email,
        export_dir: str | None = None,
        batch_size: int | None = None,
    ):
        settings = get_settings()
        self.product_repo = product_repo
        self.order_repo = order_repo
        self.user_repo = user_repo
        self.mailer = mailer
        self.export_dir = export_dir or settings.EXPORT_DIR
        self.batch_size = batch_size or settings.EXPORT_BATCH_SIZE

    def _rows(self, session: Session, entity: ExportEntity) -> Iterator[list[str]]:
        columns = EXPORT_COLUMNS[entity]
        if entity is ExportEntity.ORDER:
            records = map(order_row, self.order_repo.stream_all(session, self.batch_size))
        else:
            records = map(product_row, self.product_repo.stream_all(session, self.batch_size))
        for record in records:
            yield [_cell(record[column]) for column in columns]

    def _target_path(self, entity: ExportEntity, fmt: ExportFormat) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        filename = f"{entity.value}s-{stamp}-{uuid.uuid4().hex[:8]}.{fmt.value}"
        return os.path.join(self.export_dir, filename)

    def generate(
        self,
        session: Session,
        entity: ExportEntity | str,
        fmt: ExportFormat | str,
    ) -> ExportResult:
        """
        Write the export file without sending it.
        """
        try:
            entity = ExportEntity(entity)
            fmt = ExportFormat(fmt)
        except ValueError as exc:
            raise ExportError(str(exc)) from exc

        columns = EXPORT_COLUMNS[entity]
        path = self._target_path(entity, fmt)
        os.makedirs(self.export_dir, exist_ok=True)

        rows = self._rows(session, entity)
        if fmt is ExportFormat.CSV:
            count = write_csv(rows, columns, path)
        else:
            count = write_xlsx(rows, columns, path, sheet_title=f"Data for {entity.value}s")

        logger.info("wrote %d %s rows to %s", count, entity.value, path)
        return ExportResult(
            entity=entity,
            format=fmt,
            path=path,
            columns=list(columns),
            row_count=count,
        )

    def send_export_mail(self, result: ExportResult, user: User) -> None:
        with open(result.path, "rb") as fh:
            content = fh.read()

        attachment = (
            f"{result.entity.value}s.{result.format.value}",
            content,
            CONTENT_TYPES[result.format],
        )
        try:
            self.mailer(
                to_email=user.email,
                subject=f"Your {result.entity.value} data export ({result.format.value})",
                text_body=(
                    f"Hi {user.name},\n\n"
                    f"Attached is the {result.entity.value} export you requested "
                    f"({result.row_count} rows, {result.format.value.upper()})."
                ),
                attachments=[attachment],
            )
        except (RuntimeError, smtplib.SMTPException, OSError) as exc:
            raise ExportError(f"could not mail export to {user.email}: {exc}") from exc

    def export(
        self,
        session: Session,
        user: User,
        entity: ExportEntity | str,
        fmt: ExportFormat | str,
    ) -> ExportResult:
        """
        Generate an export and mail it to `user`.

        The file is removed from EXPORT_DIR once the mail attempt is over,
        so `result.path` no longer exists when this returns.
        """
        result = self.generate(session, entity, fmt)
        try:
            self.send_export_mail(result, user)
        finally:
            os.remove(result.path)
        logger.info("mailed %s export to %s", result.entity.value, user.email)
        return result

    def export_for_email(
        self,
        session: Session,
        email: str,
        entity: ExportEntity | str,
        fmt: ExportFormat | str,
    ) -> ExportResult:
        user = self.user_repo.get_by_email(session, email)
        if user is None:
            raise NotFound(f"User {email} not found")
        return self.export(session, user, entity, fmt)
