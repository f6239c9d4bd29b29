# app/repositories/user_repo.py
from datetime import datetime, timezone

from sqlalchemy import delete, update
from sqlmodel import Session, select

from app.models.user import User, UserSession


class UserRepository:
    """
    Data access layer for User and server-side sessions.

    Responsibilities:
      - Pure DB operations (CRUD + queries)
      - No FastAPI, no HTTP, no business logic
    """

    # ----- Basic CRUD -----

    def get_by_id(self, session: Session, user_id: int) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def get_by_google_id(self, session: Session, google_id: str) -> User | None:
        stmt = select(User).where(User.google_id == google_id)
        return session.exec(stmt).first()

    def create(self, session: Session, user: User) -> User:
        """Insert a new User and return the persisted row."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def update(self, session: Session, user: User) -> User:
        """Persist changes to an existing User."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    # ----- Token balance -----
    # No commits here; the ledger service owns the transaction.

    def get_tokens(self, session: Session, user_id: int) -> int | None:
        stmt = select(User.tokens).where(User.id == user_id)
        return session.exec(stmt).first()

    def debit_tokens(self, session: Session, user_id: int, amount: int) -> bool:
        """
        Atomically subtract `amount` if the balance covers it.

        Returns False (and changes nothing) when the user is missing or
        the balance is too low.
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.tokens >= amount)
            .values(tokens=User.tokens - amount)
        )
        return session.exec(stmt).rowcount == 1

    def credit_tokens(self, session: Session, user_id: int, amount: int) -> bool:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(tokens=User.tokens + amount)
        )
        return session.exec(stmt).rowcount == 1

    # ----- Sessions -----

    def create_session(self, session: Session, user_session: UserSession) -> UserSession:
        session.add(user_session)
        session.commit()
        session.refresh(user_session)
        return user_session

    def get_active_session(self, session: Session, sid: str) -> UserSession | None:
        """Return the session row if it exists and has not expired."""
        stmt = select(UserSession).where(
            UserSession.sid == sid,
            UserSession.expires_at > datetime.now(timezone.utc),
        )
        return session.exec(stmt).first()

    def delete_session(self, session: Session, sid: str) -> None:
        session.exec(delete(UserSession).where(UserSession.sid == sid))
        session.commit()
