"""
TrailMemo Backend — Memo Store Tests
======================================

What:  MemoStore against real SQL (in-memory SQLite via aiosqlite).
Why:   Filtering, ordering, pagination totals and the nearby pipeline are
       where persistence bugs hide; a mocked session would not catch them.
How:   The `db_session` fixture from conftest.py. Full-text search is
       PostgreSQL only, so its SQL is checked by compiling the statement
       for the postgresql dialect.

Test Strategy:
    ✅ create assigns id and timestamps; get_by_id round-trips the location
    ✅ list: newest first, totals independent of the page, every filter
    ✅ nearby: exact self-match 0.00, radius bound, ascending, limit, no-coords
    ✅ update: empty change set rejected before SQL; updated_at refreshed
    ✅ delete: missing id → NotFoundError
    ✅ search: to_tsvector @@ plainto_tsquery ordered by ts_rank
    ✅ SQLAlchemy failures surface as DatabaseError
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from trailmemo.exceptions import DatabaseError, NotFoundError, ValidationError
from trailmemo.services.memo_store import MemoFilters, MemoStore, MemoUpdate

from conftest import make_memo, make_user, scalar_result, scalars_result

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

# Golden Gate Park area
SF_LAT, SF_LON = 37.7749, -122.4194


@pytest_asyncio.fixture
async def users(db_session):
    db_session.add_all([make_user("alice"), make_user("bob")])
    await db_session.flush()


class TestCreateAndGet:

    def setup_method(self):
        self.store = MemoStore()

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self, db_session, users):
        memo = await self.store.create(db_session, make_memo("alice"))

        assert isinstance(memo.memo_id, uuid.UUID)
        assert memo.created_at is not None
        assert memo.updated_at is not None

    @pytest.mark.asyncio
    async def test_get_by_id_round_trips_location(self, db_session, users):
        memo = await self.store.create(
            db_session,
            make_memo(
                "alice",
                latitude=SF_LAT,
                longitude=SF_LON,
                location_accuracy=5.0,
                address="Stow Lake",
            ),
        )
        db_session.expunge_all()

        loaded = await self.store.get_by_id(db_session, memo.memo_id)
        assert loaded is not None
        assert loaded.location.latitude == pytest.approx(SF_LAT)
        assert loaded.location.longitude == pytest.approx(SF_LON)
        assert loaded.location.accuracy == 5.0
        assert loaded.location.address == "Stow Lake"

    @pytest.mark.asyncio
    async def test_location_is_none_without_coordinates(self, db_session, users):
        memo = await self.store.create(db_session, make_memo("alice"))
        assert memo.location is None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, db_session, users):
        assert await self.store.get_by_id(db_session, uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_unknown_user_violates_foreign_key(self, db_session, users):
        with pytest.raises(DatabaseError):
            await self.store.create(db_session, make_memo("nobody"))


class TestList:

    def setup_method(self):
        self.store = MemoStore()

    async def _seed(self, db):
        """alice ×2, bob ×1, one hour apart; the last one is newest."""
        specs = [
            ("alice", "Yosemite", BASE_TIME),
            ("bob", "Zion", BASE_TIME + timedelta(hours=1)),
            ("alice", "Zion", BASE_TIME + timedelta(hours=2)),
        ]
        memos = []
        for user_id, park, created in specs:
            memos.append(
                await self.store.create(
                    db,
                    make_memo(user_id, park_name=park, created_at=created, updated_at=created),
                )
            )
        return memos

    @pytest.mark.asyncio
    async def test_newest_first_and_total(self, db_session, users):
        memos = await self._seed(db_session)

        page = await self.store.list(db_session, page=1, limit=2)

        assert page.total == 3
        assert [m.memo_id for m in page.items] == [memos[2].memo_id, memos[1].memo_id]

    @pytest.mark.asyncio
    async def test_second_page(self, db_session, users):
        memos = await self._seed(db_session)

        page = await self.store.list(db_session, page=2, limit=2)

        assert page.total == 3
        assert [m.memo_id for m in page.items] == [memos[0].memo_id]

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, db_session, users):
        await self._seed(db_session)
        page = await self.store.list(db_session, page=5, limit=2)
        assert page.items == []
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_filter_by_user(self, db_session, users):
        await self._seed(db_session)
        page = await self.store.list(db_session, 1, 10, MemoFilters(user_id="alice"))
        assert page.total == 2
        assert {m.user_id for m in page.items} == {"alice"}

    @pytest.mark.asyncio
    async def test_filter_by_park_is_exact(self, db_session, users):
        await self._seed(db_session)
        assert (await self.store.list(db_session, 1, 10, MemoFilters(park_name="Zion"))).total == 2
        assert (await self.store.list(db_session, 1, 10, MemoFilters(park_name="zion"))).total == 0

    @pytest.mark.asyncio
    async def test_date_bounds_are_inclusive(self, db_session, users):
        memos = await self._seed(db_session)
        filters = MemoFilters(
            start_date=BASE_TIME + timedelta(hours=1),
            end_date=BASE_TIME + timedelta(hours=2),
        )

        page = await self.store.list(db_session, 1, 10, filters)

        assert page.total == 2
        assert {m.memo_id for m in page.items} == {memos[1].memo_id, memos[2].memo_id}

    @pytest.mark.asyncio
    async def test_filters_combine(self, db_session, users):
        await self._seed(db_session)
        filters = MemoFilters(user_id="alice", park_name="Zion")
        page = await self.store.list(db_session, 1, 10, filters)
        assert page.total == 1


class TestNearby:

    def setup_method(self):
        self.store = MemoStore()

    @pytest.mark.asyncio
    async def test_exact_position_has_zero_distance(self, db_session, users):
        memo = await self.store.create(
            db_session, make_memo("alice", latitude=SF_LAT, longitude=SF_LON)
        )

        matches = await self.store.get_nearby(db_session, SF_LAT, SF_LON, 100, 50)

        assert len(matches) == 1
        assert matches[0].memo.memo_id == memo.memo_id
        assert matches[0].distance_meters == 0.0

    @pytest.mark.asyncio
    async def test_radius_bound_and_ordering(self, db_session, users):
        # ~0.0045° of latitude ≈ 500 m; ~0.009° ≈ 1000 m
        near = await self.store.create(
            db_session, make_memo("alice", latitude=SF_LAT + 0.0045, longitude=SF_LON)
        )
        nearest = await self.store.create(
            db_session, make_memo("bob", latitude=SF_LAT + 0.001, longitude=SF_LON)
        )
        await self.store.create(
            db_session, make_memo("alice", latitude=SF_LAT + 0.05, longitude=SF_LON)
        )
        await self.store.create(db_session, make_memo("alice"))

        within_100 = await self.store.get_nearby(db_session, SF_LAT, SF_LON, 100, 50)
        assert within_100 == []

        within_1000 = await self.store.get_nearby(db_session, SF_LAT, SF_LON, 1000, 50)
        assert [m.memo.memo_id for m in within_1000] == [nearest.memo_id, near.memo_id]
        distances = [m.distance_meters for m in within_1000]
        assert distances == sorted(distances)
        assert all(d <= 1000 for d in distances)
        assert distances[1] == pytest.approx(500, abs=2)

    @pytest.mark.asyncio
    async def test_limit_keeps_the_nearest(self, db_session, users):
        for i in range(5):
            await self.store.create(
                db_session,
                make_memo("alice", latitude=SF_LAT + 0.0005 * i, longitude=SF_LON),
            )

        matches = await self.store.get_nearby(db_session, SF_LAT, SF_LON, 5000, 2)

        assert len(matches) == 2
        assert matches[0].distance_meters == 0.0
        assert matches[1].distance_meters == pytest.approx(55.6, abs=0.5)

    @pytest.mark.asyncio
    async def test_distances_rounded_to_centimeters(self, db_session, users):
        await self.store.create(
            db_session, make_memo("alice", latitude=SF_LAT + 0.00123, longitude=SF_LON + 0.00077)
        )
        matches = await self.store.get_nearby(db_session, SF_LAT, SF_LON, 1000, 10)
        assert matches[0].distance_meters == round(matches[0].distance_meters, 2)

    @pytest.mark.asyncio
    async def test_zero_radius_matches_exact_point_only(self, db_session, users):
        await self.store.create(db_session, make_memo("alice", latitude=SF_LAT, longitude=SF_LON))
        await self.store.create(
            db_session, make_memo("alice", latitude=SF_LAT + 0.0001, longitude=SF_LON)
        )
        matches = await self.store.get_nearby(db_session, SF_LAT, SF_LON, 0, 10)
        assert len(matches) == 1


class TestUpdateAndDelete:

    def setup_method(self):
        self.store = MemoStore()

    @pytest.mark.asyncio
    async def test_empty_update_rejected_without_sql(self, mock_db_session):
        with pytest.raises(ValidationError, match="No fields to update"):
            await self.store.update(mock_db_session, uuid.uuid4(), MemoUpdate())
        mock_db_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_changes_fields_and_timestamp(self, db_session, users):
        memo = await self.store.create(
            db_session,
            make_memo("alice", title="Old", created_at=BASE_TIME, updated_at=BASE_TIME),
        )

        updated = await self.store.update(
            db_session, memo.memo_id, MemoUpdate(text="Bridge washed out")
        )

        assert updated.text == "Bridge washed out"
        assert updated.title == "Old"
        assert updated.updated_at.replace(tzinfo=None) > BASE_TIME.replace(tzinfo=None)
        assert updated.created_at.replace(tzinfo=None) == BASE_TIME.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_update_stamps_application_clock(self, db_session, users):
        memo = await self.store.create(db_session, make_memo("alice"))
        stamp = datetime(2031, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

        with patch("trailmemo.services.memo_store._utcnow", return_value=stamp):
            updated = await self.store.update(db_session, memo.memo_id, MemoUpdate(title="New"))

        assert updated.updated_at.replace(tzinfo=None) == stamp.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_empty_string_title_is_a_change(self, db_session, users):
        memo = await self.store.create(db_session, make_memo("alice", title="Old"))
        updated = await self.store.update(db_session, memo.memo_id, MemoUpdate(title=""))
        assert updated.title == ""

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, db_session, users):
        assert await self.store.update(db_session, uuid.uuid4(), MemoUpdate(text="x")) is None

    @pytest.mark.asyncio
    async def test_delete(self, db_session, users):
        memo = await self.store.create(db_session, make_memo("alice"))
        await self.store.delete(db_session, memo.memo_id)
        assert await self.store.get_by_id(db_session, memo.memo_id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_raises_not_found(self, db_session, users):
        with pytest.raises(NotFoundError):
            await self.store.delete(db_session, uuid.uuid4())


class TestSearchStatement:
    """The search SQL is PostgreSQL-specific; inspect what would be sent."""

    def setup_method(self):
        self.store = MemoStore()

    @pytest.mark.asyncio
    async def test_uses_full_text_match_and_rank(self, mock_db_session):
        mock_db_session.execute.side_effect = [scalar_result(0), scalars_result([])]

        page = await self.store.search_by_text(mock_db_session, "bear sighting", 2, 20)

        assert page.total == 0
        assert page.items == []

        page_stmt = mock_db_session.execute.call_args_list[1].args[0]
        sql = str(page_stmt.compile(dialect=postgresql.dialect()))
        assert "to_tsvector('english', memos.text)" in sql
        assert "@@ plainto_tsquery('english'," in sql
        assert "ORDER BY ts_rank(" in sql
        assert "DESC, memos.created_at DESC" in sql
        assert "title" not in sql.split("WHERE", 1)[1]

    @pytest.mark.asyncio
    async def test_count_uses_same_match(self, mock_db_session):
        mock_db_session.execute.side_effect = [scalar_result(4), scalars_result([])]

        page = await self.store.search_by_text(mock_db_session, "elk", 1, 20)

        assert page.total == 4
        count_stmt = mock_db_session.execute.call_args_list[0].args[0]
        sql = str(count_stmt.compile(dialect=postgresql.dialect()))
        assert "count(*)" in sql
        assert "plainto_tsquery('english'," in sql


class TestErrorTranslation:

    def setup_method(self):
        self.store = MemoStore()

    @pytest.mark.asyncio
    async def test_list_failure_becomes_database_error(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(DatabaseError) as exc_info:
            await self.store.list(mock_db_session, 1, 10)

        assert exc_info.value.context["operation"] == "list"
        assert exc_info.value.context["error_type"] == "OperationalError"

    @pytest.mark.asyncio
    async def test_create_failure_becomes_database_error(self, mock_db_session):
        mock_db_session.flush.side_effect = OperationalError("INSERT", {}, Exception("down"))

        with pytest.raises(DatabaseError):
            await self.store.create(mock_db_session, make_memo("alice"))

    @pytest.mark.asyncio
    async def test_nearby_failure_becomes_database_error(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(DatabaseError):
            await self.store.get_nearby(mock_db_session, SF_LAT, SF_LON, 100, 10)

    @pytest.mark.asyncio
    async def test_delete_uses_rowcount(self, mock_db_session):
        result = MagicMock()
        result.rowcount = 1
        mock_db_session.execute.return_value = result

        await self.store.delete(mock_db_session, uuid.uuid4())
        mock_db_session.execute.assert_awaited_once()
