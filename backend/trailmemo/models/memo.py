"""
TrailMemo Backend — Memo SQLAlchemy Model
===========================================

What:  ORM model for the `memos` table plus the read-time Location view.
Who:   MemoStore (all queries), MemoService (creation), Alembic.

Table Design Rationale:
    - memo_id: UUID generated on insert (non-enumerable).
    - user_id: FK to users with ON DELETE CASCADE; removing a user removes
      their memos.
    - user_name / user_color: snapshots of the creator's profile taken at
      creation time. They are deliberately NOT refreshed when the profile
      changes; lists render without a join.
    - audio_url: never empty. Memos recorded without audio carry
      PLACEHOLDER_AUDIO_URL.
    - latitude / longitude: NUMERIC(10,8) / NUMERIC(11,8), read back as
      float. Either both set or both NULL.

Query Patterns → Indexes:
    - List by recency:          idx_memos_created (created_at DESC)
    - List one user's memos:    idx_memos_user_created (user_id, created_at DESC)
    - Filter by park:           idx_memos_park
    - Nearby bounding-box scan: idx_memos_location (latitude, longitude)
    - Full-text search:         idx_memos_text_search GIN(to_tsvector('english', text)),
                                PostgreSQL only
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
    literal_column,
)
from sqlalchemy import text as sa_text
from sqlalchemy.orm import Mapped, mapped_column

from trailmemo.database import Base

# Text search configuration shared by the GIN index and MemoStore queries.
# The expression must match the index exactly for PostgreSQL to use it.
TEXT_SEARCH_CONFIG = "english"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Location:
    """
    Read-time view over a memo's coordinate columns.

    Never persisted as its own structure; composed from
    latitude/longitude/location_accuracy/address whenever both coordinates
    are present.
    """

    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    address: Optional[str] = None


class Memo(Base):
    """A voice memo recorded in the field."""

    __tablename__ = "memos"
    __table_args__ = (
        CheckConstraint(
            "(latitude IS NULL) = (longitude IS NULL)",
            name="ck_memos_coordinates_paired",
        ),
    )

    memo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )

    # ── Creator snapshot ──────────────────────────────────────────────────
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_color: Mapped[str] = mapped_column(String(7), nullable=False)

    # ── Content ───────────────────────────────────────────────────────────
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    audio_url: Mapped[str] = mapped_column(Text, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Position ──────────────────────────────────────────────────────────
    latitude: Mapped[Optional[float]] = mapped_column(
        Numeric(10, 8, asdecimal=False), nullable=True
    )
    longitude: Mapped[Optional[float]] = mapped_column(
        Numeric(11, 8, asdecimal=False), nullable=True
    )
    location_accuracy: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True, comment="Horizontal accuracy in meters"
    )
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    park_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    # Application clock for both; MemoStore.update stamps updated_at.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=sa_text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=sa_text("CURRENT_TIMESTAMP"),
    )

    @property
    def location(self) -> Optional[Location]:
        if self.latitude is None or self.longitude is None:
            return None
        return Location(
            latitude=float(self.latitude),
            longitude=float(self.longitude),
            accuracy=self.location_accuracy,
            address=self.address,
        )

    def __repr__(self) -> str:
        return f"<Memo(memo_id={self.memo_id}, user_id='{self.user_id}')>"


Index("idx_memos_user_created", Memo.user_id, Memo.created_at.desc())
Index("idx_memos_location", Memo.latitude, Memo.longitude)
Index("idx_memos_park", Memo.park_name)
Index("idx_memos_created", Memo.created_at.desc())
Index(
    "idx_memos_text_search",
    func.to_tsvector(literal_column(f"'{TEXT_SEARCH_CONFIG}'"), Memo.text),
    postgresql_using="gin",
).ddl_if(dialect="postgresql")
