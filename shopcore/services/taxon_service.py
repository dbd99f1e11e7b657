# shopcore/services/taxon_service.py
import logging
import uuid

from sqlmodel import Session

from shopcore.core.errors import NotFound, ValidationError
from shopcore.models.taxon import Taxon
from shopcore.repositories.taxon_repo import TaxonRepository
from shopcore.services.product_service import ProductService

logger = logging.getLogger(__name__)


class TaxonService:
    """
    Category tree maintenance.
    """

    def __init__(self, repo: TaxonRepository, product_service: ProductService):
        self.repo = repo
        self.product_service = product_service

    def get_taxon(self, session: Session, taxon_id: uuid.UUID) -> Taxon:
        taxon = self.repo.get_by_id(session, taxon_id)
        if taxon is None:
            raise NotFound(f"Taxon {taxon_id} not found")
        return taxon

    def create_taxon(
        self,
        session: Session,
        name: str,
        parent_id: uuid.UUID | None = None,
    ) -> Taxon:
        name = name.strip()
        if not name:
            raise ValidationError("taxon name cannot be empty")
        if parent_id is not None:
            self.get_taxon(session, parent_id)
        return self.repo.create(session, Taxon(name=name, parent_id=parent_id))

    def delete_taxon(self, session: Session, taxon_id: uuid.UUID) -> list[uuid.UUID]:
        """
        Soft-delete a taxon, its descendants and every product under them.

        One transaction: if the product cascade is partial, nothing changes.
        Returns the ids of the deleted products.
        """
        taxon = self.get_taxon(session, taxon_id)
        taxon_ids = self.repo.subtree_ids(session, taxon.id)
        try:
            self.repo.mark_deleted(session, taxon_ids)
            product_ids = self.product_service.cascade_category_delete(session, taxon_ids)
            session.commit()
        except Exception:
            session.rollback()
            raise
        logger.info(
            "deleted taxon %s with %d descendants and %d products",
            taxon_id,
            len(taxon_ids) - 1,
            len(product_ids),
        )
        return product_ids
