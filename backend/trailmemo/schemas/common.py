"""
TrailMemo Backend — Shared Response Schemas
=============================================

Pagination metadata, the error envelope and the health payload.
"""

import math
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    """
    Page metadata for list and search responses.

    total_pages is ceil(total_items / items_per_page); 0 when nothing matched.
    """

    current_page: int = Field(description="1-based page number")
    total_pages: int = Field(description="Number of pages at this page size")
    total_items: int = Field(description="Size of the whole filtered set")
    items_per_page: int = Field(description="Page size used for this response")
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next=page < total_pages,
            has_previous=page > 1,
        )


class ErrorDetail(BaseModel):
    code: str = Field(description="Machine-readable error code, e.g. VALIDATION_ERROR")
    message: str = Field(description="Human-readable description")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Extra context (client errors only)",
    )


class ErrorResponse(BaseModel):
    """
    Body of every non-2xx response.

    Example:
        {
            "error": {
                "code": "AUTHORIZATION_ERROR",
                "message": "You can only update your own memos",
                "details": {"memo_id": "3f0c..."}
            },
            "request_id": "a1b2c3d4"
        }
    """

    error: ErrorDetail
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    status is "ok" when every dependency answers, "degraded" when audio
    storage is unavailable and "unhealthy" when the database is unreachable.
    """

    status: str
    service: str
    version: str
    database: str = Field(description="connected | disconnected")
    storage: str = Field(description="available | unavailable")
    uptime_seconds: float
