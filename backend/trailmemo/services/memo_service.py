"""
TrailMemo Backend — Memo Service (Business Logic Orchestrator)
================================================================

What:  Coordinates MemoStore, UserStore and the ObjectStore for every /memos
       operation and shapes the Pydantic responses.
Who:   Route handlers in routes/memos.py.

Create Flow (POST /memos):
    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐    ┌──────────┐
    │ Load creator │───▶│ Upload audio │───▶│ Insert memo  │───▶│ Response │
    │ (UserStore)  │    │ (ObjectStore)│    │ (MemoStore)  │    │          │
    └──────────────┘    └──────────────┘    └──────────────┘    └──────────┘

    If the insert fails after the upload succeeded, the upload is deleted
    (best effort, WARNING on failure) and the insert error is re-raised.
    The client never sees a memo without its audio or audio without a memo.

Ownership:
    update and delete load the memo first and compare user_id with the
    caller's subject id. A mismatch is AuthorizationError (403), reported
    only after the memo is known to exist (404 first).
"""

import logging
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.config import PLACEHOLDER_AUDIO_URL
from trailmemo.exceptions import AuthorizationError, NotFoundError
from trailmemo.models.memo import Memo
from trailmemo.schemas.common import Pagination
from trailmemo.schemas.memo import (
    LocationResponse,
    MemoListResponse,
    MemoResponse,
    NearbyMemo,
    NearbyMemosResponse,
    SearchResponse,
)
from trailmemo.services.memo_store import MemoFilters, MemoStore, MemoUpdate
from trailmemo.services.object_store import ObjectStore
from trailmemo.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewMemo:
    """Validated create-memo input, independent of the multipart encoding."""

    text: str
    duration_seconds: int
    title: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_accuracy: Optional[float] = None
    address: Optional[str] = None
    park_name: Optional[str] = None


@dataclass(frozen=True)
class AudioUpload:
    stream: BinaryIO
    filename: Optional[str]
    content_type: Optional[str] = None


class MemoService:
    """
    Stateless orchestrator; the AppContext wires one instance with its
    collaborators. Every method takes the request's session first.
    """

    def __init__(self, memo_store: MemoStore, user_store: UserStore, object_store: ObjectStore):
        self.memo_store = memo_store
        self.user_store = user_store
        self.object_store = object_store

    # ── Create ────────────────────────────────────────────────────────────

    async def create_memo(
        self,
        db: AsyncSession,
        owner_id: str,
        data: NewMemo,
        audio: Optional[AudioUpload] = None,
    ) -> MemoResponse:
        """
        Raises:
            NotFoundError:   caller has not registered (no user row)
            ValidationError / PayloadTooLargeError: audio rejected
            UpstreamError:   audio upload failed
            DatabaseError:   insert failed (upload already compensated)
        """
        user = await self.user_store.get_by_id(db, owner_id)
        if user is None:
            raise NotFoundError(
                resource="user",
                resource_id=owner_id,
                message="User not found. Please register first.",
            )

        audio_url = PLACEHOLDER_AUDIO_URL
        if audio is not None:
            audio_url = await self.object_store.put(
                audio.stream,
                audio.filename,
                owner_id,
                content_type=audio.content_type,
            )

        memo = Memo(
            user_id=owner_id,
            user_name=user.display_name,
            user_color=user.color,
            title=data.title,
            audio_url=audio_url,
            text=data.text,
            duration_seconds=data.duration_seconds,
            latitude=data.latitude,
            longitude=data.longitude,
            location_accuracy=data.location_accuracy,
            address=data.address,
            park_name=data.park_name,
        )

        try:
            await self.memo_store.create(db, memo)
        except Exception:
            if audio_url != PLACEHOLDER_AUDIO_URL:
                await self._discard_audio(audio_url)
            raise

        return MemoResponse.model_validate(memo)

    # ── Read ──────────────────────────────────────────────────────────────

    async def get_memo(self, db: AsyncSession, memo_id: uuid.UUID) -> MemoResponse:
        memo = await self._require_memo(db, memo_id)
        return MemoResponse.model_validate(memo)

    async def list_memos(
        self,
        db: AsyncSession,
        page: int,
        limit: int,
        filters: Optional[MemoFilters] = None,
    ) -> MemoListResponse:
        result = await self.memo_store.list(db, page, limit, filters)
        return MemoListResponse(
            memos=[MemoResponse.model_validate(m) for m in result.items],
            pagination=Pagination.build(page, limit, result.total),
        )

    async def search_memos(
        self,
        db: AsyncSession,
        query: str,
        page: int,
        limit: int,
    ) -> SearchResponse:
        result = await self.memo_store.search_by_text(db, query, page, limit)
        return SearchResponse(
            results=[MemoResponse.model_validate(m) for m in result.items],
            query=query,
            pagination=Pagination.build(page, limit, result.total),
        )

    async def nearby_memos(
        self,
        db: AsyncSession,
        latitude: float,
        longitude: float,
        radius_meters: int,
        limit: int,
    ) -> NearbyMemosResponse:
        matches = await self.memo_store.get_nearby(db, latitude, longitude, radius_meters, limit)
        memos = [
            NearbyMemo(
                memo_id=match.memo.memo_id,
                user_name=match.memo.user_name,
                user_color=match.memo.user_color,
                title=match.memo.title,
                park_name=match.memo.park_name,
                location=LocationResponse.model_validate(match.memo.location),
                distance_meters=match.distance_meters,
                created_at=match.memo.created_at,
            )
            for match in matches
        ]
        return NearbyMemosResponse(
            memos=memos,
            center=LocationResponse(latitude=latitude, longitude=longitude),
            radius_meters=radius_meters,
            total_found=len(memos),
        )

    # ── Mutate ────────────────────────────────────────────────────────────

    async def update_memo(
        self,
        db: AsyncSession,
        caller_id: str,
        memo_id: uuid.UUID,
        changes: MemoUpdate,
    ) -> MemoResponse:
        memo = await self._require_memo(db, memo_id)
        if memo.user_id != caller_id:
            raise AuthorizationError(
                "You can only update your own memos",
                context={"memo_id": str(memo_id)},
            )

        updated = await self.memo_store.update(db, memo_id, changes)
        if updated is None:
            raise NotFoundError(resource="memo", resource_id=str(memo_id))
        return MemoResponse.model_validate(updated)

    async def delete_memo(self, db: AsyncSession, caller_id: str, memo_id: uuid.UUID) -> None:
        memo = await self._require_memo(db, memo_id)
        if memo.user_id != caller_id:
            raise AuthorizationError(
                "You can only delete your own memos",
                context={"memo_id": str(memo_id)},
            )

        # Best effort; a storage failure never blocks the row delete.
        if self.object_store.owns(memo.audio_url):
            await self._discard_audio(memo.audio_url)

        await self.memo_store.delete(db, memo_id)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _require_memo(self, db: AsyncSession, memo_id: uuid.UUID) -> Memo:
        memo = await self.memo_store.get_by_id(db, memo_id)
        if memo is None:
            raise NotFoundError(resource="memo", resource_id=str(memo_id))
        return memo

    async def _discard_audio(self, url: str) -> None:
        try:
            await self.object_store.delete(url)
        except Exception as e:
            logger.warning("Failed to delete audio %s: %s", url, str(e))
