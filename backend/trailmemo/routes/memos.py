"""
TrailMemo Backend — Memo Route Handlers
=========================================

What:  The /memos resource: create, list, nearby, search, get, update, delete.
How:   Thin handlers. Parse and validate HTTP input, call MemoService, return
       its response model. Every route requires a bearer token.

Route Order:
    /memos/nearby and /memos/search are declared before /memos/{memo_id};
    otherwise "nearby" would be parsed as a memo id.

Paging defaults:
    GET /memos          page=1, limit=100 (1..500)
    GET /memos/search   page=1, limit=20  (1..100)
    GET /memos/nearby   radius_meters=1000 (0..50000), limit=50 (1..200)
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.context import AppContext
from trailmemo.dependencies import get_context, get_current_identity, get_db_session
from trailmemo.exceptions import ValidationError
from trailmemo.routes.params import (
    parse_date_param,
    parse_float_param,
    parse_int_param,
    parse_memo_id,
    parse_page,
    validate_coordinates,
)
from trailmemo.schemas.common import ErrorResponse
from trailmemo.schemas.memo import (
    MemoListResponse,
    MemoResponse,
    MemoUpdateRequest,
    NearbyMemosResponse,
    SearchResponse,
)
from trailmemo.services.identity import VerifiedIdentity
from trailmemo.services.memo_service import AudioUpload, NewMemo
from trailmemo.services.memo_store import MemoFilters, MemoUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/memos",
    tags=["Memos"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)

LIST_DEFAULT_LIMIT, LIST_MAX_LIMIT = 100, 500
SEARCH_DEFAULT_LIMIT, SEARCH_MAX_LIMIT = 20, 100
NEARBY_DEFAULT_RADIUS, NEARBY_MAX_RADIUS = 1000, 50_000
NEARBY_DEFAULT_LIMIT, NEARBY_MAX_LIMIT = 50, 200


@router.post(
    "",
    response_model=MemoResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Caller has not registered", "model": ErrorResponse},
        413: {"description": "Audio exceeds MAX_UPLOAD_SIZE", "model": ErrorResponse},
        502: {"description": "Audio storage failed", "model": ErrorResponse},
    },
    summary="Record a memo",
)
async def create_memo(
    text: str = Form(..., description="Transcribed memo text"),
    duration_seconds: int = Form(..., ge=0, description="Recording length in seconds"),
    title: str | None = Form(default=None, max_length=255),
    latitude: float | None = Form(default=None),
    longitude: float | None = Form(default=None),
    location_accuracy: float | None = Form(default=None, ge=0),
    address: str | None = Form(default=None),
    park_name: str | None = Form(default=None, max_length=255),
    audio: UploadFile | None = File(default=None, description="Audio recording (m4a, mp3, ...)"),
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> MemoResponse:
    """
    Multipart form. Without an `audio` part the memo is stored with the
    placeholder audio URL.
    """
    if not text.strip():
        raise ValidationError("text is required", field="text")
    latitude, longitude = validate_coordinates(latitude, longitude)

    data = NewMemo(
        text=text,
        duration_seconds=duration_seconds,
        title=title,
        latitude=latitude,
        longitude=longitude,
        location_accuracy=location_accuracy,
        address=address,
        park_name=park_name,
    )

    upload = None
    # Some clients send an empty file part instead of omitting it.
    if audio is not None and audio.filename:
        upload = AudioUpload(
            stream=audio.file,
            filename=audio.filename,
            content_type=audio.content_type,
        )

    return await context.memo_service.create_memo(db, identity.subject_id, data, upload)


@router.get("", response_model=MemoListResponse, summary="List memos, newest first")
async def list_memos(
    page: str | None = Query(default=None, description="1-based page (default 1)"),
    limit: str | None = Query(default=None, description="Page size (default 100, max 500)"),
    park_name: str | None = Query(default=None, description="Exact park name"),
    user_id: str | None = Query(default=None, description="Only memos by this user"),
    start_date: str | None = Query(default=None, description="Inclusive lower bound (ISO 8601)"),
    end_date: str | None = Query(default=None, description="Inclusive upper bound (ISO 8601)"),
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> MemoListResponse:
    filters = MemoFilters(
        park_name=park_name or None,
        user_id=user_id or None,
        start_date=parse_date_param(start_date, "start_date"),
        end_date=parse_date_param(end_date, "end_date", end_of_day=True),
    )
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise ValidationError("start_date must not be after end_date", field="start_date")

    return await context.memo_service.list_memos(
        db,
        page=parse_page(page),
        limit=parse_int_param(limit, LIST_DEFAULT_LIMIT, 1, LIST_MAX_LIMIT),
        filters=filters,
    )


@router.get("/nearby", response_model=NearbyMemosResponse, summary="Memos near a point")
async def nearby_memos(
    latitude: str | None = Query(default=None),
    longitude: str | None = Query(default=None),
    radius_meters: str | None = Query(default=None, description="Default 1000, max 50000"),
    limit: str | None = Query(default=None, description="Default 50, max 200"),
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> NearbyMemosResponse:
    lat, lon = validate_coordinates(
        parse_float_param(latitude, "latitude"),
        parse_float_param(longitude, "longitude"),
    )
    return await context.memo_service.nearby_memos(
        db,
        latitude=lat,
        longitude=lon,
        radius_meters=parse_int_param(radius_meters, NEARBY_DEFAULT_RADIUS, 0, NEARBY_MAX_RADIUS),
        limit=parse_int_param(limit, NEARBY_DEFAULT_LIMIT, 1, NEARBY_MAX_LIMIT),
    )


@router.get("/search", response_model=SearchResponse, summary="Full-text search over memo text")
async def search_memos(
    q: str | None = Query(default=None, description="Search words"),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None, description="Default 20, max 100"),
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> SearchResponse:
    query = (q or "").strip()
    if not query:
        raise ValidationError("Search query (q) is required", field="q")

    return await context.memo_service.search_memos(
        db,
        query=query,
        page=parse_page(page),
        limit=parse_int_param(limit, SEARCH_DEFAULT_LIMIT, 1, SEARCH_MAX_LIMIT),
    )


@router.get(
    "/{memo_id}",
    response_model=MemoResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get one memo",
)
async def get_memo(
    memo_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> MemoResponse:
    return await context.memo_service.get_memo(db, parse_memo_id(memo_id))


@router.put(
    "/{memo_id}",
    response_model=MemoResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Edit title, text or park name of your own memo",
)
async def update_memo(
    memo_id: str,
    body: MemoUpdateRequest,
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> MemoResponse:
    if body.text is not None and not body.text.strip():
        raise ValidationError("text must not be empty", field="text")
    changes = MemoUpdate(title=body.title, text=body.text, park_name=body.park_name)
    return await context.memo_service.update_memo(
        db, identity.subject_id, parse_memo_id(memo_id), changes
    )


@router.delete(
    "/{memo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Delete your own memo and its audio",
)
async def delete_memo(
    memo_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await context.memo_service.delete_memo(db, identity.subject_id, parse_memo_id(memo_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
