"""User and category models.

Both tables belong to the surrounding HR application. They are mapped here
so that reports can reference them and the manager lookup can query roles.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.compat import UTCDateTime, UUIDType
from app.utils.timeutil import utcnow


class User(Base):
    """User account owned by the identity collaborator."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        UUIDType(), primary_key=True, default=uuid4
    )
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="employee", index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class Category(Base):
    """Report category offered on the intake form."""

    __tablename__ = "wb_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Category {self.id} {self.name}>"
