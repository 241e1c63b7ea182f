"""
TrailMemo Backend — Local Audio File Serving
==============================================

GET {api_prefix}/files/{key:path}

Mounted only when STORAGE_BACKEND=local; with Firebase the audio URLs
point straight at Cloud Storage. Audio is public by URL in both
backends (the key contains a random UUID), so no token is required.
"""

import mimetypes

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from trailmemo.context import AppContext
from trailmemo.dependencies import get_context
from trailmemo.exceptions import NotFoundError, StorageError
from trailmemo.services.object_store import LocalObjectStore

router = APIRouter(prefix="/files", tags=["Files"])


@router.get("/{key:path}", response_class=FileResponse)
async def get_file(key: str, context: AppContext = Depends(get_context)) -> FileResponse:
    store = context.object_store
    if not isinstance(store, LocalObjectStore):
        raise NotFoundError(resource="file", resource_id=key)

    try:
        path = store.resolve_path(key)
    except StorageError:
        raise NotFoundError(resource="file", resource_id=key)
    if not path.is_file():
        raise NotFoundError(resource="file", resource_id=key)

    media_type, _ = mimetypes.guess_type(path.name)
    return FileResponse(
        path,
        media_type=media_type or "application/octet-stream",
        headers={"Cache-Control": "public, max-age=86400, immutable"},
    )
