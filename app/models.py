"""
Data models for the posts and todo demos.

"""
from datetime import datetime, UTC

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Post(Base):
    """
    A short post written by a signed-in user.

    - created_by_id: the Cognito subject (`sub`) from the author's session;
      users themselves are not stored.
    """
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False, index=True)
    created_by_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "createdById": self.created_by_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Todo(Base):
    """Item of the public todo list demo; not tied to a user."""
    __tablename__ = "todos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(256), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
