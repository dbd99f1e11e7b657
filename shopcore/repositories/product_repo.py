# shopcore/repositories/product_repo.py
import uuid
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, update
from sqlmodel import Session, col, select

from shopcore.models.image import BlobDeletion, Image, ProductImageLink
from shopcore.models.product import (
    LIFECYCLE_STATES,
    Product,
    ProductState,
    StockItem,
    Variation,
)
from shopcore.schemas.product import ProductFilter


class ProductRepository:
    """
    Data access layer for Product, Variation, StockItem and product images.

    - Pure DB operations (CRUD + queries).
    - Single-step writes (create/update/soft_delete) commit.
    - Helpers used inside multi-step transactions only flush; the
      service owns session.commit() / session.rollback() for those.
    """

    # ----- Products -----

    def get_all(self, session: Session) -> list[Product]:
        return list(session.exec(select(Product)).all())

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def get_by(self, session: Session, **filters: Any) -> Product | None:
        stmt = select(Product)
        for field, value in filters.items():
            stmt = stmt.where(getattr(Product, field) == value)
        return session.exec(stmt).first()

    def get_by_slug(self, session: Session, slug: str) -> Product | None:
        stmt = select(Product).where(Product.slug == slug)
        return session.exec(stmt).first()

    def create(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def update(self, session: Session, product: Product) -> Product:
        product.updated_at = datetime.now(timezone.utc)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def soft_delete(self, session: Session, product: Product) -> Product:
        now = datetime.now(timezone.utc)
        product.state = ProductState.DELETED.value
        product.is_active = False
        product.deleted_at = now
        product.updated_at = now
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    # ----- Variations -----

    @staticmethod
    def _child_ids():
        return select(Variation.child_product_id)

    @staticmethod
    def _parent_ids():
        return select(Variation.parent_product_id).distinct()

    def add_variation(
        self,
        session: Session,
        parent_id: uuid.UUID,
        child_id: uuid.UUID,
    ) -> Variation:
        variation = Variation(parent_product_id=parent_id, child_product_id=child_id)
        session.add(variation)
        session.commit()
        session.refresh(variation)
        return variation

    def parent_id_for(self, session: Session, product_id: uuid.UUID) -> uuid.UUID | None:
        stmt = select(Variation.parent_product_id).where(
            Variation.child_product_id == product_id
        )
        return session.exec(stmt).first()

    # ----- Listings -----

    def active_query(self):
        """
        Active, not soft-deleted products.
        """
        return select(Product).where(
            Product.state == ProductState.ACTIVE.value,
            col(Product.deleted_at).is_(None),
        )

    def admin_display_query(self):
        """
        Standalone and parent products: everything active except variant children.
        """
        return self.active_query().where(col(Product.id).not_in(self._child_ids()))

    def sellable_query(self):
        """
        Standalone and variant products: everything orderable except parents.
        """
        return select(Product).where(
            col(Product.state).not_in(
                [ProductState.IN_ACTIVE.value, ProductState.DELETED.value]
            ),
            col(Product.deleted_at).is_(None),
            col(Product.id).not_in(self._parent_ids()),
        )

    def active_products(self, session: Session) -> list[Product]:
        return list(session.exec(self.active_query()).all())

    def admin_display_products(self, session: Session) -> list[Product]:
        return list(session.exec(self.admin_display_query()).all())

    def sellable_products(self, session: Session) -> list[Product]:
        return list(session.exec(self.sellable_query()).all())

    def list_products(
        self,
        session: Session,
        query: ProductFilter,
    ) -> tuple[list[Product], int]:
        """
        Filtered, sorted, paginated listing that hides variant children.

        Returns (items for the requested page, total matching rows).
        """
        stmt = select(Product).where(
            col(Product.deleted_at).is_(None),
            col(Product.id).not_in(self._child_ids()),
        )
        if query.search_term:
            stmt = stmt.where(col(Product.name).ilike(f"%{query.search_term.strip()}%"))
        for field, value in query.filters.items():
            stmt = stmt.where(getattr(Product, field) == value)

        total = session.exec(select(func.count()).select_from(stmt.subquery())).one()

        order_col = col(getattr(Product, query.sort_field))
        order_by = order_col.asc() if query.sort_order == "asc" else order_col.desc()
        stmt = (
            stmt.order_by(order_by, col(Product.id))
            .offset((query.page - 1) * query.per_page)
            .limit(query.per_page)
        )
        return list(session.exec(stmt).all()), int(total or 0)

    def stream_all(self, session: Session, batch_size: int = 500) -> Iterator[Product]:
        """
        Iterate every product, fetching rows from the cursor in batches.
        """
        stmt = (
            select(Product)
            .order_by(Product.created_at, Product.id)
            .execution_options(yield_per=batch_size)
        )
        yield from session.exec(stmt)

    # ----- Category -----

    @staticmethod
    def _in_category(taxon_ids: Iterable[uuid.UUID]) -> tuple:
        """
        Not-yet-deleted products tagged to any of `taxon_ids`.
        """
        return (
            col(Product.taxon_id).in_(list(taxon_ids)),
            Product.state != ProductState.DELETED.value,
        )

    def products_in_category(
        self,
        session: Session,
        taxon_ids: Iterable[uuid.UUID],
    ) -> list[Product]:
        stmt = select(Product).where(*self._in_category(taxon_ids))
        return list(session.exec(stmt).all())

    def ids_in_category(self, session: Session, taxon_ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
        stmt = select(Product.id).where(*self._in_category(taxon_ids))
        return list(session.exec(stmt).all())

    def bulk_soft_delete(self, session: Session, product_ids: list[uuid.UUID]) -> int:
        """
        Mark products deleted without committing. Returns updated row count.
        """
        now = datetime.now(timezone.utc)
        stmt = (
            update(Product)
            .where(col(Product.id).in_(product_ids))
            .where(Product.state != ProductState.DELETED.value)
            .values(
                state=ProductState.DELETED.value,
                is_active=False,
                deleted_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)  # type: ignore[call-overload]
        return int(result.rowcount or 0)

    # ----- Pricing / stock / stats -----

    def selling_prices(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> list[tuple]:
        stmt = select(
            Product.id,
            Product.selling_price_amount,
            Product.selling_price_currency,
        ).where(col(Product.id).in_(product_ids))
        return list(session.exec(stmt).all())

    def stock_summary(self, session: Session, product_id: uuid.UUID) -> tuple[int, int]:
        """
        (number of stock items, total count_on_hand) for a product.
        """
        stmt = select(
            func.count(StockItem.id),
            func.coalesce(func.sum(StockItem.count_on_hand), 0),
        ).where(StockItem.product_id == product_id)
        items, on_hand = session.exec(stmt).one()
        return int(items or 0), int(on_hand or 0)

    def add_stock_item(
        self,
        session: Session,
        product_id: uuid.UUID,
        count_on_hand: int,
    ) -> StockItem:
        item = StockItem(product_id=product_id, count_on_hand=count_on_hand)
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def count_by_state(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> list[tuple]:
        """
        Non-variant products created in [start, end], grouped by lifecycle state.
        """
        stmt = (
            select(Product.state, func.count(Product.id))
            .where(
                Product.created_at >= start,
                Product.created_at <= end,
                col(Product.state).in_(LIFECYCLE_STATES),
                col(Product.id).not_in(self._child_ids()),
            )
            .group_by(Product.state)
            .order_by(Product.state)
        )
        return list(session.exec(stmt).all())

    # ----- Product images -----

    def list_images_for_product(
        self,
        session: Session,
        product_id: uuid.UUID,
    ) -> list[Image]:
        stmt = (
            select(Image)
            .join(ProductImageLink, ProductImageLink.image_id == Image.id)
            .where(ProductImageLink.product_id == product_id)
            .order_by(Image.created_at, Image.id)
        )
        return list(session.exec(stmt).all())

    def default_image_for_product(
        self,
        session: Session,
        product_id: uuid.UUID,
    ) -> Image | None:
        stmt = (
            select(Image)
            .join(ProductImageLink, ProductImageLink.image_id == Image.id)
            .where(ProductImageLink.product_id == product_id, Image.is_default == True)  # noqa: E712
        )
        return session.exec(stmt).first()

    def get_image_by_id(
        self,
        session: Session,
        image_id: uuid.UUID,
    ) -> Image | None:
        return session.get(Image, image_id)

    def get_image_link(
        self,
        session: Session,
        product_id: uuid.UUID,
        image_id: uuid.UUID,
    ) -> ProductImageLink | None:
        return session.get(ProductImageLink, (product_id, image_id))

    def attach_image(
        self,
        session: Session,
        product_id: uuid.UUID,
        image: Image,
    ) -> Image:
        """
        Insert an image row and its association (flush only).
        """
        session.add(image)
        session.flush()
        session.add(ProductImageLink(product_id=product_id, image_id=image.id))
        session.flush()
        return image

    def delete_image_link(self, session: Session, link: ProductImageLink) -> None:
        session.delete(link)
        session.flush()

    def delete_image_row(self, session: Session, image: Image) -> None:
        session.delete(image)
        session.flush()

    # ----- Blob cleanup outbox -----

    def queue_blob_deletion(
        self,
        session: Session,
        reference: str,
        product_id: uuid.UUID,
    ) -> BlobDeletion:
        pending = BlobDeletion(reference=reference, product_id=product_id)
        session.add(pending)
        session.flush()
        return pending

    def list_blob_deletions(
        self,
        session: Session,
        ids: list[uuid.UUID] | None = None,
        limit: int = 100,
    ) -> list[BlobDeletion]:
        stmt = select(BlobDeletion).order_by(BlobDeletion.created_at)
        if ids is not None:
            stmt = stmt.where(col(BlobDeletion.id).in_(ids))
        return list(session.exec(stmt.limit(limit)).all())
