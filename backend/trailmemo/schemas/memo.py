"""
TrailMemo Backend — Memo Schemas
==================================

What:  API contracts for /memos.
Who:   MemoService builds the response models; routes declare them as
       response_model so OpenAPI documents the exact shapes.

Response Shapes:
    GET /memos           → MemoListResponse   {memos, pagination}
    GET /memos/search    → SearchResponse     {results, query, pagination}
    GET /memos/nearby    → NearbyMemosResponse {memos, center, radius_meters, total_found}
    GET/POST/PUT /memos… → MemoResponse

    `location` is null for memos recorded without coordinates.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from trailmemo.schemas.common import Pagination


class LocationResponse(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = Field(default=None, description="Horizontal accuracy in meters")
    address: Optional[str] = None

    model_config = {"from_attributes": True}


class MemoResponse(BaseModel):
    memo_id: uuid.UUID
    user_id: str
    user_name: str = Field(description="Creator's display name when the memo was recorded")
    user_color: str = Field(description="Creator's color when the memo was recorded")
    title: Optional[str] = None
    audio_url: str
    text: str
    duration_seconds: int
    location: Optional[LocationResponse] = None
    park_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MemoListResponse(BaseModel):
    memos: List[MemoResponse]
    pagination: Pagination


class SearchResponse(BaseModel):
    results: List[MemoResponse]
    query: str
    pagination: Pagination


class NearbyMemo(BaseModel):
    memo_id: uuid.UUID
    user_name: str
    user_color: str
    title: Optional[str] = None
    park_name: Optional[str] = None
    location: LocationResponse
    distance_meters: float = Field(description="Great-circle distance, rounded to 0.01 m")
    created_at: datetime


class NearbyMemosResponse(BaseModel):
    memos: List[NearbyMemo]
    center: LocationResponse
    radius_meters: int
    total_found: int


class MemoUpdateRequest(BaseModel):
    """Any subset of the mutable fields. An empty body is rejected by the store."""

    title: Optional[str] = Field(default=None, max_length=255)
    text: Optional[str] = None
    park_name: Optional[str] = Field(default=None, max_length=255)
