"""
TrailMemo Backend — Memo Store (Persistence & Queries)
========================================================

What:  Every SQL statement that touches the `memos` table.
Who:   MemoService; nothing above the service layer imports this module.

Query Shapes:
    ┌────────────┬───────────────────────────────────────┬────────────────────────┐
    │ Operation  │ Ordering                              │ Index                  │
    ├────────────┼───────────────────────────────────────┼────────────────────────┤
    │ list       │ created_at DESC                       │ idx_memos_created /    │
    │            │                                       │ idx_memos_user_created │
    │ search     │ ts_rank DESC, created_at DESC         │ idx_memos_text_search  │
    │ nearby     │ haversine distance ASC (in-process)   │ idx_memos_location     │
    │ get_by_id  │ n/a                                   │ primary key            │
    └────────────┴───────────────────────────────────────┴────────────────────────┘

Transaction Contract:
    Methods receive the request's AsyncSession, flush when they need
    generated values, and NEVER commit. get_db_session() commits once the
    route returns and rolls back on any exception. No method retries.

Error Contract:
    SQLAlchemy failures become DatabaseError with the operation name and
    error type in `context`. None means "no such row"; the caller decides
    whether that is a 404.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, literal_column, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.exceptions import DatabaseError, NotFoundError, ValidationError
from trailmemo.models.memo import TEXT_SEARCH_CONFIG, Memo
from trailmemo.services.geo import bounding_box, haversine_distance, round_to_centimeters

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Query Parameter Types
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MemoFilters:
    """Optional list filters. start_date/end_date are inclusive bounds on created_at."""

    park_name: Optional[str] = None
    user_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass(frozen=True)
class MemoUpdate:
    """
    The mutable subset of a memo. None means "leave unchanged".

    An empty string is a real value (clears a title), not an omission.
    """

    title: Optional[str] = None
    text: Optional[str] = None
    park_name: Optional[str] = None

    def is_empty(self) -> bool:
        return self.title is None and self.text is None and self.park_name is None

    def as_values(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if self.title is not None:
            values["title"] = self.title
        if self.text is not None:
            values["text"] = self.text
        if self.park_name is not None:
            values["park_name"] = self.park_name
        return values


@dataclass
class MemoPage:
    """One page of results plus the size of the whole filtered set."""

    items: List[Memo] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True)
class NearbyMatch:
    memo: Memo
    distance_meters: float


def _persistence_error(operation: str, exc: Exception, **context: Any) -> DatabaseError:
    logger.error("Memo store %s failed: %s", operation, str(exc), exc_info=True)
    return DatabaseError(
        context={"operation": operation, "error_type": type(exc).__name__, **context},
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════
# Memo Store
# ══════════════════════════════════════════════════════════════════════════

class MemoStore:
    """Stateless; one instance lives on the AppContext."""

    async def create(self, db: AsyncSession, memo: Memo) -> Memo:
        """
        Insert `memo`. memo_id, created_at and updated_at are assigned on the
        passed object during flush.
        """
        try:
            db.add(memo)
            await db.flush()
        except SQLAlchemyError as e:
            raise _persistence_error("create", e, user_id=memo.user_id)

        logger.info("Memo created: %s (user=%s)", memo.memo_id, memo.user_id)
        return memo

    async def get_by_id(self, db: AsyncSession, memo_id: uuid.UUID) -> Optional[Memo]:
        # populate_existing: a preceding Core UPDATE must not be masked by the
        # identity map's copy of the row.
        stmt = (
            select(Memo)
            .where(Memo.memo_id == memo_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _persistence_error("get_by_id", e, memo_id=str(memo_id))

    async def list(
        self,
        db: AsyncSession,
        page: int,
        limit: int,
        filters: Optional[MemoFilters] = None,
    ) -> MemoPage:
        """
        Filtered page ordered newest first.

        The count and the page query are built from the same clause list, so
        `total` always describes exactly the set being paged through.
        Ranges are trusted here; the route layer normalizes page/limit.
        """
        clauses = self._filter_clauses(filters or MemoFilters())
        offset = (page - 1) * limit

        count_stmt = select(func.count()).select_from(Memo).where(*clauses)
        page_stmt = (
            select(Memo)
            .where(*clauses)
            .order_by(Memo.created_at.desc(), Memo.memo_id.desc())
            .offset(offset)
            .limit(limit)
        )

        try:
            total = (await db.execute(count_stmt)).scalar() or 0
            items = list((await db.execute(page_stmt)).scalars().all())
        except SQLAlchemyError as e:
            raise _persistence_error("list", e, page=page, limit=limit)

        return MemoPage(items=items, total=total)

    async def search_by_text(
        self,
        db: AsyncSession,
        query: str,
        page: int,
        limit: int,
    ) -> MemoPage:
        """
        Full-text search over `text` only (titles and park names are not
        searched). PostgreSQL only.

        The vector expression is identical to idx_memos_text_search so the
        GIN index is used for the match.
        """
        config = literal_column(f"'{TEXT_SEARCH_CONFIG}'")
        vector = func.to_tsvector(config, Memo.text)
        ts_query = func.plainto_tsquery(config, query)
        match = vector.op("@@")(ts_query)
        rank = func.ts_rank(vector, ts_query)

        count_stmt = select(func.count()).select_from(Memo).where(match)
        page_stmt = (
            select(Memo)
            .where(match)
            .order_by(rank.desc(), Memo.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        try:
            total = (await db.execute(count_stmt)).scalar() or 0
            items = list((await db.execute(page_stmt)).scalars().all())
        except SQLAlchemyError as e:
            raise _persistence_error("search_by_text", e)

        return MemoPage(items=items, total=total)

    async def get_nearby(
        self,
        db: AsyncSession,
        latitude: float,
        longitude: float,
        radius_meters: float,
        limit: int,
    ) -> List[NearbyMatch]:
        """
        Memos within `radius_meters` of the point, nearest first.

        Steps:
            1. SQL: coordinates present and inside the bounding box
            2. Python: exact haversine distance, drop anything beyond radius
            3. Sort ascending, truncate to `limit`, round to centimeters
        """
        box = bounding_box(latitude, longitude, radius_meters)
        clauses = [
            Memo.latitude.is_not(None),
            Memo.longitude.is_not(None),
            Memo.latitude.between(box.min_lat, box.max_lat),
        ]
        if box.min_lon is not None and box.max_lon is not None:
            clauses.append(Memo.longitude.between(box.min_lon, box.max_lon))

        try:
            result = await db.execute(select(Memo).where(*clauses))
            candidates = result.scalars().all()
        except SQLAlchemyError as e:
            raise _persistence_error("get_nearby", e)

        in_range = []
        for memo in candidates:
            distance = haversine_distance(
                latitude, longitude, float(memo.latitude), float(memo.longitude)
            )
            if distance <= radius_meters:
                in_range.append((distance, memo))

        in_range.sort(key=lambda pair: pair[0])
        logger.debug(
            "Nearby (%.6f, %.6f) r=%sm: %d candidates, %d in range",
            latitude,
            longitude,
            radius_meters,
            len(candidates),
            len(in_range),
        )
        return [
            NearbyMatch(memo=memo, distance_meters=round_to_centimeters(distance))
            for distance, memo in in_range[:limit]
        ]

    async def update(
        self,
        db: AsyncSession,
        memo_id: uuid.UUID,
        changes: MemoUpdate,
    ) -> Optional[Memo]:
        """
        Apply `changes` and refresh updated_at.

        Raises ValidationError before touching the database when `changes`
        is empty. Returns the re-fetched memo, or None if the row is gone.
        """
        if changes.is_empty():
            raise ValidationError("No fields to update")

        values = changes.as_values()
        values["updated_at"] = _utcnow()

        stmt = update(Memo).where(Memo.memo_id == memo_id).values(**values)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise _persistence_error("update", e, memo_id=str(memo_id))

        if result.rowcount == 0:
            return None

        logger.info("Memo updated: %s (%s)", memo_id, ", ".join(sorted(changes.as_values())))
        return await self.get_by_id(db, memo_id)

    async def delete(self, db: AsyncSession, memo_id: uuid.UUID) -> None:
        try:
            result = await db.execute(delete(Memo).where(Memo.memo_id == memo_id))
        except SQLAlchemyError as e:
            raise _persistence_error("delete", e, memo_id=str(memo_id))

        if result.rowcount == 0:
            raise NotFoundError(resource="memo", resource_id=str(memo_id))

        logger.info("Memo deleted: %s", memo_id)

    @staticmethod
    def _filter_clauses(filters: MemoFilters) -> List[Any]:
        clauses = []
        if filters.park_name:
            clauses.append(Memo.park_name == filters.park_name)
        if filters.user_id:
            clauses.append(Memo.user_id == filters.user_id)
        if filters.start_date is not None:
            clauses.append(Memo.created_at >= filters.start_date)
        if filters.end_date is not None:
            clauses.append(Memo.created_at <= filters.end_date)
        return clauses
