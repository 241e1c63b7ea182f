"""
TrailMemo Backend — User SQLAlchemy Model
===========================================

What:  ORM model for the `users` table.
Who:   UserStore (CRUD), AccountService (registration), MemoService (the
       display name / color snapshot taken when a memo is created).

Table Design Rationale:
    - user_id: the identity provider's subject id, used verbatim as the
      primary key. Never generated here.
    - email: unique; copied from the verified credential at registration.
    - color: derived from user_id once (services/color.py) and stored, so a
      change to the derivation never recolors existing users.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy import text as sa_text
from sqlalchemy.orm import Mapped, mapped_column

from trailmemo.database import Base


class User(Base):
    """A registered field user."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Identity provider subject id",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # '#rrggbb'
    color: Mapped[str] = mapped_column(String(7), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=sa_text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(user_id='{self.user_id}', email='{self.email}')>"
