# shopcore/repositories/taxon_repo.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import update
from sqlmodel import Session, col, select

from shopcore.models.taxon import Taxon


class TaxonRepository:
    """
    Data access layer for the category tree.
    """

    def get_by_id(self, session: Session, taxon_id: uuid.UUID) -> Taxon | None:
        return session.get(Taxon, taxon_id)

    def create(self, session: Session, taxon: Taxon) -> Taxon:
        session.add(taxon)
        session.commit()
        session.refresh(taxon)
        return taxon

    def children_ids(self, session: Session, parent_ids: list[uuid.UUID]) -> list[uuid.UUID]:
        stmt = select(Taxon.id).where(col(Taxon.parent_id).in_(parent_ids))
        return list(session.exec(stmt).all())

    def subtree_ids(self, session: Session, taxon_id: uuid.UUID) -> list[uuid.UUID]:
        """
        The taxon itself followed by all of its descendants, level by level.
        """
        found: list[uuid.UUID] = [taxon_id]
        seen = {taxon_id}
        frontier = [taxon_id]
        while frontier:
            frontier = [
                child
                for child in self.children_ids(session, frontier)
                if child not in seen
            ]
            seen.update(frontier)
            found.extend(frontier)
        return found

    def mark_deleted(self, session: Session, taxon_ids: list[uuid.UUID]) -> int:
        """
        Soft-delete taxons without committing. Returns updated row count.
        """
        stmt = (
            update(Taxon)
            .where(col(Taxon.id).in_(taxon_ids), col(Taxon.deleted_at).is_(None))
            .values(deleted_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = session.exec(stmt)  # type: ignore[call-overload]
        return int(result.rowcount or 0)
