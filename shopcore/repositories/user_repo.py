# shopcore/repositories/user_repo.py
import uuid

from sqlmodel import Session, select

from shopcore.models.user import User


class UserRepository:
    """
    Data access layer for User.
    """

    def get_by_id(self, session: Session, user_id: uuid.UUID) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def get_by_email(self, session: Session, email: str) -> User | None:
        """Return a User by unique email, or None if not found."""
        stmt = select(User).where(User.email == email.strip().lower())
        return session.exec(stmt).first()

    def create(self, session: Session, user: User) -> User:
        """Insert a new User and return the persisted row."""
        user.email = user.email.strip().lower()
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
