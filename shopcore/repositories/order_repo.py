# shopcore/repositories/order_repo.py
import uuid
from collections.abc import Iterator

from sqlmodel import Session, select

from shopcore.models.order import Order


class OrderRepository:
    """
    Data access layer for orders.
    """

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def create(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.commit()
        session.refresh(order)
        return order

    def stream_all(self, session: Session, batch_size: int = 500) -> Iterator[Order]:
        """
        Iterate every order, fetching rows from the cursor in batches.
        """
        stmt = (
            select(Order)
            .order_by(Order.created_at, Order.id)
            .execution_options(yield_per=batch_size)
        )
        yield from session.exec(stmt)
