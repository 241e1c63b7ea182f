"""
TrailMemo Backend — Audio Object Storage
==========================================

What:  Stores and deletes memo audio blobs and hands back retrievable URLs.
Who:   MemoService (create → put, failed create / delete → delete),
       the /files route (LocalObjectStore only), the health check.

Implementations:
    FirebaseObjectStore   Cloud Storage bucket via firebase-admin
                          URL: https://storage.googleapis.com/<bucket>/<key>
    LocalObjectStore      files under STORAGE_ROOT, written with aiofiles
                          URL: <public_base_url><api_prefix>/files/<key>

Key Layout:
    memos/<owner_id>/<uuid4><ext>
    The owner id is the identity provider's subject id. The file name is
    random so no client-supplied text reaches the storage path.

Upload Validation (before any bytes are stored):
    1. Extension in ALLOWED_AUDIO_EXTENSIONS  → ValidationError (400)
    2. Size <= MAX_UPLOAD_SIZE                → PayloadTooLargeError (413)
    3. Non-empty                              → ValidationError (400)

Resilience (FirebaseObjectStore):
    tenacity retries transient failures (connection, timeout, 5xx, 429) with
    exponential backoff + jitter; a circuit breaker short-circuits calls
    after repeated failures. Every blocking SDK call runs in a worker thread
    with STORAGE_TIMEOUT_SECONDS.
"""

import asyncio
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Set, Tuple

import aiofiles
import aiofiles.os
import firebase_admin
from firebase_admin import storage
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from trailmemo.config import PLACEHOLDER_AUDIO_URL
from trailmemo.exceptions import (
    CircuitBreakerOpenError,
    PayloadTooLargeError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_EXTENSION = ".m4a"
CHUNK_SIZE = 1024 * 1024

# Failures worth another attempt; anything else (403, 404, bad request) is
# permanent and surfaces immediately.
TRANSIENT_STORAGE_ERRORS = (
    ConnectionError,
    TimeoutError,
    google_exceptions.ServerError,
    google_exceptions.TooManyRequests,
)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    CLOSED → OPEN after `failure_threshold` consecutive failures.
    OPEN → HALF_OPEN once `recovery_timeout` seconds have passed.
    HALF_OPEN lets exactly one trial call through; others are rejected
    until it reports. HALF_OPEN → CLOSED on success, back to OPEN on failure.

    Single-process only: state lives in this object. Multiple uvicorn
    workers each keep their own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._clock = clock

    def can_execute(self) -> bool:
        """True if a call may proceed; raises CircuitBreakerOpenError otherwise."""
        if self.state == self.CLOSED:
            return True
        if self.state == self.HALF_OPEN:
            # Trial call in flight.
            raise CircuitBreakerOpenError(recovery_time=1)

        elapsed = self._clock() - (self.last_failure_time or 0)
        if elapsed >= self.recovery_timeout:
            logger.info("Storage circuit breaker HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
            return True

        raise CircuitBreakerOpenError(recovery_time=max(1, int(self.recovery_timeout - elapsed)))

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Storage circuit breaker CLOSED (storage recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Storage circuit breaker back to OPEN (probe failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Storage circuit breaker OPEN after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Interface
# ══════════════════════════════════════════════════════════════════════════

class ObjectStore(ABC):
    """
    Contract:
        - put() returns a URL that delete() accepts verbatim
        - delete() of an object that is already gone succeeds
        - owns(url) tells whether delete() applies to `url` at all; the
          placeholder URL and foreign URLs are never owned
    """

    def __init__(self, max_upload_size: int, allowed_extensions: Set[str]):
        self.max_upload_size = max_upload_size
        self.allowed_extensions = allowed_extensions

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: Optional[str]) -> str:
        """Normalized extension ('.m4a'); files without one are treated as m4a."""
        ext = Path(filename or "").suffix.lower() or DEFAULT_AUDIO_EXTENSION
        if ext not in self.allowed_extensions:
            raise ValidationError(
                message=(
                    f"Audio type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(self.allowed_extensions))}"
                ),
                field="audio",
                context={"extension": ext},
            )
        return ext

    def validate_size(self, size: int) -> None:
        max_mb = self.max_upload_size / (1024 * 1024)
        if size > self.max_upload_size:
            raise PayloadTooLargeError(
                message=f"Audio file size ({size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="audio",
                context={"max_size_mb": max_mb, "actual_size": size},
            )
        if size == 0:
            raise ValidationError(message="Audio file is empty", field="audio")

    def validate_upload(self, stream: BinaryIO, filename: Optional[str]) -> Tuple[str, int]:
        """Check extension and size without consuming the stream. Returns (ext, size)."""
        ext = self.validate_extension(filename)
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        self.validate_size(size)
        return ext, size

    @staticmethod
    def build_key(owner_id: str, extension: str) -> str:
        return f"memos/{owner_id}/{uuid.uuid4()}{extension}"

    # ── Operations ────────────────────────────────────────────────────────

    @abstractmethod
    async def put(
        self,
        stream: BinaryIO,
        filename: Optional[str],
        owner_id: str,
        content_type: Optional[str] = None,
    ) -> str:
        """Validate and store `stream`; return its public URL."""
        ...

    @abstractmethod
    async def delete(self, url: str) -> None:
        ...

    @abstractmethod
    def owns(self, url: str) -> bool:
        ...

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ══════════════════════════════════════════════════════════════════════════
# Local Filesystem
# ══════════════════════════════════════════════════════════════════════════

class LocalObjectStore(ObjectStore):
    """
    Development backend: files under `storage_root`, served back through
    GET {api_prefix}/files/{key}.
    """

    def __init__(
        self,
        storage_root: str,
        url_prefix: str,
        max_upload_size: int,
        allowed_extensions: Set[str],
    ):
        super().__init__(max_upload_size, allowed_extensions)
        self.storage_root = Path(storage_root).resolve()
        self.url_prefix = url_prefix.rstrip("/") + "/"
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("LocalObjectStore at %s (urls: %s)", self.storage_root, self.url_prefix)

    def resolve_path(self, key: str) -> Path:
        """Absolute path for `key`; keys escaping storage_root are rejected."""
        path = (self.storage_root / key).resolve()
        if self.storage_root not in path.parents:
            raise StorageError(
                message="Invalid storage key",
                context={"key": key},
            )
        return path

    def owns(self, url: str) -> bool:
        return bool(url) and url != PLACEHOLDER_AUDIO_URL and url.startswith(self.url_prefix)

    async def put(
        self,
        stream: BinaryIO,
        filename: Optional[str],
        owner_id: str,
        content_type: Optional[str] = None,
    ) -> str:
        ext, size = self.validate_upload(stream, filename)
        key = self.build_key(owner_id, ext)
        path = self.resolve_path(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    await f.write(chunk)
        except OSError as e:
            logger.error("Failed to store audio at %s: %s", path, str(e))
            raise StorageError(
                message="Failed to save uploaded audio. Please try again.",
                context={"key": key, "os_error": str(e)},
            )

        logger.info("Audio stored: %s (%d bytes)", key, size)
        return f"{self.url_prefix}{key}"

    async def delete(self, url: str) -> None:
        if not self.owns(url):
            raise StorageError(message="URL does not belong to this store", context={"url": url})

        path = self.resolve_path(url[len(self.url_prefix):])
        try:
            await aiofiles.os.remove(path)
            logger.info("Audio deleted: %s", path.name)
        except FileNotFoundError:
            logger.debug("Audio already gone: %s", path.name)
        except OSError as e:
            raise StorageError(
                message="Failed to delete audio",
                context={"path": str(path), "os_error": str(e)},
            )

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)


# ══════════════════════════════════════════════════════════════════════════
# Firebase Cloud Storage
# ══════════════════════════════════════════════════════════════════════════

class FirebaseObjectStore(ObjectStore):
    """Cloud Storage bucket owned by the context's firebase_admin App."""

    PUBLIC_HOST = "https://storage.googleapis.com"

    def __init__(
        self,
        app: firebase_admin.App,
        bucket_name: str,
        max_upload_size: int,
        allowed_extensions: Set[str],
        timeout_seconds: float = 60.0,
        retry_max_attempts: int = 3,
        retry_min_wait: float = 0.5,
        retry_max_wait: float = 5.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(max_upload_size, allowed_extensions)
        self.bucket_name = bucket_name
        self.bucket = storage.bucket(bucket_name, app=app)
        self.timeout_seconds = timeout_seconds
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.url_prefix = f"{self.PUBLIC_HOST}/{bucket_name}/"
        logger.info(
            "FirebaseObjectStore bucket=%s, retries=%d, circuit_breaker(threshold=%d, recovery=%ds)",
            bucket_name,
            retry_max_attempts,
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    def owns(self, url: str) -> bool:
        return bool(url) and url != PLACEHOLDER_AUDIO_URL and url.startswith(self.url_prefix)

    async def put(
        self,
        stream: BinaryIO,
        filename: Optional[str],
        owner_id: str,
        content_type: Optional[str] = None,
    ) -> str:
        ext, size = self.validate_upload(stream, filename)
        key = self.build_key(owner_id, ext)

        def upload() -> None:
            blob = self.bucket.blob(key)
            blob.metadata = {
                "uploaded_by": owner_id,
                "uploaded_at": datetime.now(timezone.utc).isoformat(),
            }
            # Each attempt re-sends the whole stream.
            stream.seek(0)
            blob.upload_from_file(
                stream,
                content_type=content_type or "audio/mp4",
                size=size,
                timeout=self.timeout_seconds,
            )

        await self._call("put", key, upload)
        logger.info("Audio uploaded: %s (%d bytes)", key, size)
        return f"{self.url_prefix}{key}"

    async def delete(self, url: str) -> None:
        if not self.owns(url):
            raise StorageError(message="URL does not belong to this bucket", context={"url": url})

        key = url[len(self.url_prefix):]

        def remove() -> None:
            try:
                self.bucket.blob(key).delete(timeout=self.timeout_seconds)
            except google_exceptions.NotFound:
                logger.debug("Audio already gone: %s", key)

        await self._call("delete", key, remove)
        logger.info("Audio deleted: %s", key)

    async def health_check(self) -> bool:
        return self.circuit_breaker.state != CircuitBreaker.OPEN

    async def _call(self, operation: str, key: str, fn: Callable[[], None]) -> None:
        """
        Run a blocking SDK call in a worker thread with retries and the
        circuit breaker.

        The timeout is the SDK's own `timeout=` on each request, so a slow
        attempt fails inside its thread before the next attempt starts. An
        outer asyncio timeout would abandon the thread while it still reads
        the upload stream.
        """
        self.circuit_breaker.can_execute()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_max_attempts),
                wait=wait_random_exponential(multiplier=self.retry_min_wait, max=self.retry_max_wait),
                retry=retry_if_exception_type(TRANSIENT_STORAGE_ERRORS),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=False,
            ):
                with attempt:
                    await asyncio.to_thread(fn)
        except RetryError as e:
            self.circuit_breaker.record_failure()
            last = e.last_attempt.exception() if e.last_attempt else None
            logger.error("Storage %s of %s failed after retries: %s", operation, key, last)
            raise StorageError(
                context={
                    "operation": operation,
                    "attempts": self.retry_max_attempts,
                    "error_type": type(last).__name__ if last else "unknown",
                },
            )
        except google_exceptions.GoogleAPICallError as e:
            self.circuit_breaker.record_failure()
            logger.error("Storage %s of %s rejected: %s", operation, key, str(e))
            raise StorageError(context={"operation": operation, "error_type": type(e).__name__})
        except Exception:
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
