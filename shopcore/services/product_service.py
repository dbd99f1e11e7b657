# shopcore/services/product_service.py
import logging
import re
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from shopcore.core.config import get_settings
from shopcore.core.errors import (
    BlobStoreError,
    NotFound,
    PartialDeleteError,
    RemoteIndexError,
    UploadError,
    ValidationError,
)
from shopcore.core.search_client import build_product_document, search_indexer
from shopcore.core.storage_utils import ALLOWED_IMAGE_CONTENT_TYPES, SupabaseImageStore
from shopcore.models.image import BlobDeletion, Image
from shopcore.models.product import Product, Variation
from shopcore.models.taxon import Taxon
from shopcore.repositories.product_repo import ProductRepository
from shopcore.repositories.taxon_repo import TaxonRepository
from shopcore.schemas.product import (
    ImageDeleteResult,
    ImageEntry,
    KeptImage,
    Money,
    NewImage,
    ProductCreate,
    ProductFilter,
    ProductPage,
    ProductStateCount,
    ProductUpdate,
)

logger = logging.getLogger(__name__)

# --- Image config ---

MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5MB per image


class ProductService:
    """
    Business logic for products and their images.

    Responsibilities:
      - slug generation & uniqueness
      - soft deletes, including whole-category cascades
      - image attach/delete orchestration across the DB and blob store
      - pushing updated products to the search index (best-effort)

    Blob store and DB are kept consistent like this:
      - attach stores blobs first, then commits; on any failure the blobs
        stored by that call are removed again and nothing is committed
      - delete commits the row removal together with a BlobDeletion outbox
        row; the outbox row is cleared once the store confirms removal
    """

    def __init__(
        self,
        repo: ProductRepository,
        image_store=None,
        indexer=None,
        taxon_repo: TaxonRepository | None = None,
        tenant: str | None = None,
    ):
        self.repo = repo
        self.image_store = image_store or SupabaseImageStore()
        self.indexer = indexer or search_indexer()
        self.taxon_repo = taxon_repo or TaxonRepository()
        self.tenant = tenant or get_settings().TENANT

    # ----- Helpers -----

    @staticmethod
    def _slugify(raw: str) -> str:
        """
        Basic slugification:
          - lowercase
          - non-alphanumeric -> '-'
          - collapse multiple '-'
          - strip leading/trailing '-'
        """
        value = raw.strip().lower()
        value = re.sub(r"[^a-z0-9]+", "-", value)
        value = re.sub(r"-+", "-", value)
        value = value.strip("-")
        return value or "product"

    def _ensure_unique_slug(
        self,
        session: Session,
        base_slug: str,
        exclude_id: uuid.UUID | None = None,
    ) -> str:
        """
        Ensure slug is unique by appending -2, -3, ... if needed.
        """
        slug = base_slug
        i = 2
        while True:
            existing = self.repo.get_by_slug(session, slug)
            if existing is None or existing.id == exclude_id:
                return slug
            slug = f"{base_slug}-{i}"
            i += 1

    @staticmethod
    def _validate_image(upload: NewImage) -> None:
        if upload.content_type not in ALLOWED_IMAGE_CONTENT_TYPES:
            raise ValidationError("Unsupported image type. Allowed: JPEG, PNG, WEBP.")
        if not upload.data:
            raise ValidationError("Image is empty.")
        if len(upload.data) > MAX_IMAGE_BYTES:
            raise ValidationError("Image too large (max 5MB).")

    def _save(self, session: Session, product: Product) -> Product:
        try:
            return self.repo.update(session, product)
        except IntegrityError as exc:
            session.rollback()
            raise ValidationError(f"product violates a constraint: {exc.orig}") from exc

    def _push_to_index(self, session: Session, product: Product) -> None:
        """
        Best-effort search indexing; the DB write is never undone.
        """
        document = build_product_document(
            product,
            parent_id=self.repo.parent_id_for(session, product.id),
            images=self.repo.list_images_for_product(session, product.id),
            tenant=self.tenant,
        )
        try:
            self.indexer.index_product(document)
        except RemoteIndexError as exc:
            logger.warning("search index push failed for product %s: %s", product.id, exc)

    # ----- Products -----

    def get_all(self, session: Session) -> list[Product]:
        return self.repo.get_all(session)

    def get_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.repo.get_by_id(session, product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found")
        return product

    def find_product(self, session: Session, **filters) -> Product | None:
        """
        First product whose columns equal the given values, or None.
        """
        unknown = [f for f in filters if f not in Product.model_fields]
        if unknown:
            raise ValidationError(f"unknown product fields: {unknown}")
        return self.repo.get_by(session, **filters)

    def create_product(
        self,
        session: Session,
        payload: ProductCreate,
    ) -> Product:
        """
        Create a new product with a unique slug.

        - If slug is provided => slugify & ensure unique.
        - Else => slugify from name & ensure unique.
        """
        raw_slug = payload.slug or payload.name
        slug = self._ensure_unique_slug(session, self._slugify(raw_slug))

        product = Product(
            name=payload.name,
            slug=slug,
            description=payload.description,
            selling_price_amount=payload.selling_price.amount,
            selling_price_currency=payload.selling_price.currency,
            max_retail_price_amount=payload.max_retail_price.amount,
            max_retail_price_currency=payload.max_retail_price.currency,
            state=payload.state,
            taxon_id=payload.taxon_id,
            store=payload.store,
            weight=payload.weight,
            height=payload.height,
            is_active=payload.is_active,
        )
        try:
            return self.repo.create(session, product)
        except IntegrityError as exc:
            session.rollback()
            raise ValidationError(f"product violates a constraint: {exc.orig}") from exc

    def update_product(
        self,
        session: Session,
        product_id: uuid.UUID,
        payload: ProductUpdate,
    ) -> Product:
        """
        Partial update of a product, then push it to the search index.

        - If slug is changed, enforce uniqueness.
        - Index failures are logged; the update stays committed.
        """
        product = self.get_product(session, product_id)
        changes = payload.model_dump(exclude_unset=True)

        if "slug" in changes and changes["slug"] is not None:
            new_base_slug = self._slugify(changes.pop("slug"))
            if new_base_slug != product.slug:
                product.slug = self._ensure_unique_slug(
                    session, new_base_slug, exclude_id=product.id
                )
        for price_field in ("selling_price", "max_retail_price"):
            if changes.get(price_field) is not None:
                money = Money.model_validate(changes.pop(price_field))
                setattr(product, f"{price_field}_amount", money.amount)
                setattr(product, f"{price_field}_currency", money.currency)
        for field, value in changes.items():
            if value is None and field != "taxon_id":
                continue
            setattr(product, field, value)

        product = self._save(session, product)
        self._push_to_index(session, product)
        return product

    def delete_product(
        self,
        session: Session,
        product_id: uuid.UUID,
    ) -> Product:
        """
        Soft-delete: the row stays, flagged deleted and hidden from listings.
        """
        product = self.get_product(session, product_id)
        return self.repo.soft_delete(session, product)

    def add_variant(
        self,
        session: Session,
        parent_id: uuid.UUID,
        child_id: uuid.UUID,
    ) -> Variation:
        if parent_id == child_id:
            raise ValidationError("a product cannot be its own variant")
        self.get_product(session, parent_id)
        self.get_product(session, child_id)
        try:
            return self.repo.add_variation(session, parent_id, child_id)
        except IntegrityError as exc:
            session.rollback()
            raise ValidationError(f"product {child_id} already has a parent") from exc

    # ----- Category -----

    def cascade_category_delete(
        self,
        session: Session,
        taxon_ids: list[uuid.UUID],
    ) -> list[uuid.UUID]:
        """
        Soft-delete every product under `taxon_ids` without committing.

        Raises PartialDeleteError if the bulk update did not touch exactly
        the rows counted beforehand; the caller must roll back.
        """
        product_ids = self.repo.ids_in_category(session, taxon_ids)
        if not product_ids:
            return []
        deleted = self.repo.bulk_soft_delete(session, product_ids)
        if deleted != len(product_ids):
            raise PartialDeleteError(expected=len(product_ids), deleted=deleted)
        return product_ids

    def delete_by_category(self, session: Session, taxon: Taxon) -> list[uuid.UUID]:
        """
        Soft-delete all products under `taxon` and its descendant taxons.

        Returns the ids of the products that were deleted.
        """
        taxon_ids = self.taxon_repo.subtree_ids(session, taxon.id)
        try:
            product_ids = self.cascade_category_delete(session, taxon_ids)
            session.commit()
        except Exception:
            session.rollback()
            raise
        logger.info(
            "deleted %d products under taxon %s (%d taxons)",
            len(product_ids),
            taxon.id,
            len(taxon_ids),
        )
        return product_ids

    def get_products_by_category(self, session: Session, taxon_id: uuid.UUID) -> list[Product]:
        """
        Products under a taxon, the whole subtree included.
        """
        taxon_ids = self.taxon_repo.subtree_ids(session, taxon_id)
        return self.repo.products_in_category(session, taxon_ids)

    # ----- Listings -----

    def active_products(self, session: Session) -> list[Product]:
        return self.repo.active_products(session)

    def admin_product_list(self, session: Session) -> list[Product]:
        """
        Standalone and parent products (variant children hidden).
        """
        return self.repo.admin_display_products(session)

    def sellable_products(self, session: Session) -> list[Product]:
        """
        Standalone and variant products (parents hidden).
        """
        return self.repo.sellable_products(session)

    def list_products(self, session: Session, query: ProductFilter) -> ProductPage:
        items, total = self.repo.list_products(session, query)
        return ProductPage(items=items, total=total, page=query.page, per_page=query.per_page)

    def get_product_with_default_image(
        self,
        session: Session,
        product_id: uuid.UUID,
    ) -> tuple[Product, Image | None]:
        product = self.get_product(session, product_id)
        return product, self.repo.default_image_for_product(session, product.id)

    def get_selling_prices(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, Money]:
        rows = self.repo.selling_prices(session, product_ids)
        return {
            product_id: Money(amount=amount, currency=currency)
            for product_id, amount, currency in rows
        }

    def is_orderable(self, session: Session, product_id: uuid.UUID) -> bool:
        """
        For now a product is orderable iff it has stock on hand.
        """
        product = self.get_product(session, product_id)
        items, on_hand = self.repo.stock_summary(session, product.id)
        return items > 0 and on_hand > 0

    def product_count_by_state(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> list[ProductStateCount]:
        if start > end:
            raise ValidationError("start must not be after end")
        rows = self.repo.count_by_state(session, start, end)
        return [ProductStateCount(state=state, count=int(count)) for state, count in rows]

    # ----- Images -----

    def list_images(self, session: Session, product_id: uuid.UUID) -> list[Image]:
        self.get_product(session, product_id)
        return self.repo.list_images_for_product(session, product_id)

    def add_images(
        self,
        session: Session,
        product_id: uuid.UUID,
        entries: Iterable[ImageEntry],
    ) -> list[Image]:
        """
        Make the product's images exactly `entries`.

        - KeptImage entries stay attached; attached images not listed are
          detached and their blobs queued for removal.
        - NewImage entries are stored in the blob store and attached.

        All-or-nothing: if any blob store call fails (UploadError) or the DB write
        fails, blobs stored by this call are removed and nothing is
        committed, so no association ever points at a missing blob.
        """
        product = self.get_product(session, product_id)
        entries = list(entries)
        current = {img.id: img for img in self.repo.list_images_for_product(session, product.id)}

        kept = [e for e in entries if isinstance(e, KeptImage)]
        uploads = [e for e in entries if isinstance(e, NewImage)]

        unknown = [str(e.id) for e in kept if e.id not in current]
        if unknown:
            raise ValidationError(f"images not attached to product {product.id}: {unknown}")
        for upload in uploads:
            self._validate_image(upload)

        stored: list[str] = []
        try:
            for upload in uploads:
                stored.append(self.image_store.store(upload, product.id))
        except BlobStoreError as exc:
            session.rollback()
            self._discard_blobs(session, stored, product_id)
            raise UploadError(f"upload error for product {product_id}: {exc}") from exc

        kept_ids = {e.id for e in kept}
        default_requested = any(e.is_default for e in entries)
        queued: list[uuid.UUID] = []
        try:
            for image_id, image in current.items():
                if image_id in kept_ids:
                    continue
                reference = image.name
                link = self.repo.get_image_link(session, product.id, image_id)
                self.repo.delete_image_link(session, link)
                self.repo.delete_image_row(session, image)
                queued.append(self.repo.queue_blob_deletion(session, reference, product.id).id)

            remaining = [current[e.id] for e in kept]
            if default_requested:
                for entry, image in zip(kept, remaining):
                    image.is_default = entry.is_default

            for upload, reference in zip(uploads, stored):
                image = Image(
                    name=reference,
                    url=self.image_store.public_url(reference),
                    is_default=upload.is_default,
                )
                remaining.append(self.repo.attach_image(session, product.id, image))

            if remaining:
                chosen = next((img for img in remaining if img.is_default), remaining[0])
                for img in remaining:
                    img.is_default = img is chosen
                    session.add(img)

            product.updated_at = datetime.now(timezone.utc)
            session.add(product)
            session.commit()
        except BlobStoreError as exc:
            session.rollback()
            self._discard_blobs(session, stored, product_id)
            raise UploadError(f"upload error for product {product_id}: {exc}") from exc
        except Exception:
            session.rollback()
            self._discard_blobs(session, stored, product_id)
            raise

        for pending in self.repo.list_blob_deletions(session, ids=queued, limit=len(queued) or 1):
            self._remove_blob(session, pending)

        session.refresh(product)
        self._push_to_index(session, product)
        return self.repo.list_images_for_product(session, product.id)

    def delete_image(
        self,
        session: Session,
        product_id: uuid.UUID,
        image_id: uuid.UUID,
    ) -> ImageDeleteResult:
        """
        Delete one image of a product.

        The product lookup, image lookup, association delete, image row
        delete and outbox insert commit as one transaction. Removing the
        blob afterwards is best-effort: on failure the outbox row stays
        for retry_pending_blob_deletions() and blob_removed is False.
        """
        try:
            product = self.get_product(session, product_id)
            image = self.repo.get_image_by_id(session, image_id)
            link = (
                self.repo.get_image_link(session, product.id, image_id)
                if image is not None
                else None
            )
            if image is None or link is None:
                raise NotFound(f"Image {image_id} not found for product {product_id}")

            reference = image.name
            self.repo.delete_image_link(session, link)
            self.repo.delete_image_row(session, image)
            pending = self.repo.queue_blob_deletion(session, reference, product.id)
            session.commit()
        except Exception:
            session.rollback()
            raise

        removed = self._remove_blob(session, pending)
        return ImageDeleteResult(product_id=product_id, image_id=image_id, blob_removed=removed)

    # ----- Blob cleanup -----

    def _remove_blob(self, session: Session, pending: BlobDeletion) -> bool:
        try:
            self.image_store.delete(pending.reference, pending.product_id)
        except BlobStoreError as exc:
            pending.attempts += 1
            pending.last_error = str(exc)
            session.add(pending)
            session.commit()
            logger.warning(
                "blob %s still pending removal (attempt %d): %s",
                pending.reference,
                pending.attempts,
                exc,
            )
            return False
        session.delete(pending)
        session.commit()
        return True

    def _discard_blobs(self, session: Session, references: list[str], product_id: uuid.UUID) -> None:
        """
        Compensate blobs stored by a failed attach. Anything the store
        refuses to remove is queued in the outbox.
        """
        for reference in references:
            try:
                self.image_store.delete(reference, product_id)
            except BlobStoreError as exc:
                logger.warning("could not discard blob %s: %s", reference, exc)
                self.repo.queue_blob_deletion(session, reference, product_id)
                session.commit()

    def retry_pending_blob_deletions(self, session: Session, limit: int = 100) -> int:
        """
        Retry outstanding blob removals. Returns how many succeeded.
        """
        removed = 0
        for pending in self.repo.list_blob_deletions(session, limit=limit):
            if self._remove_blob(session, pending):
                removed += 1
        return removed
