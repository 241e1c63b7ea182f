"""
TrailMemo Backend — Application Context
=========================================

What:  The one object that owns every long-lived resource: settings, the
       async engine and session factory, the Firebase app, the identity
       verifier, the object store, and the stores/services wired to them.
Why:   Nothing is constructed at import time. The lifespan handler (or a
       test) builds a context explicitly and puts it on app.state; FastAPI
       dependencies read it from there.
How:   build_context(settings) constructs everything in dependency order;
       AppContext.aclose() releases it in reverse.

    settings ─▶ engine ─▶ session_factory
             └▶ firebase app ─▶ identity_verifier
                             └▶ object_store (firebase | local)
    memo_store, user_store ─▶ memo_service, account_service
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import firebase_admin
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from trailmemo.config import Settings
from trailmemo.database import build_engine, build_session_factory
from trailmemo.services.account_service import AccountService
from trailmemo.services.firebase import close_firebase_app, init_firebase_app
from trailmemo.services.identity import FirebaseIdentityVerifier, IdentityVerifier
from trailmemo.services.memo_service import MemoService
from trailmemo.services.memo_store import MemoStore
from trailmemo.services.object_store import (
    CircuitBreaker,
    FirebaseObjectStore,
    LocalObjectStore,
    ObjectStore,
)
from trailmemo.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    identity_verifier: IdentityVerifier
    object_store: ObjectStore
    memo_store: MemoStore = field(default_factory=MemoStore)
    user_store: UserStore = field(default_factory=UserStore)
    firebase_app: Optional[firebase_admin.App] = None
    memo_service: MemoService = field(init=False)
    account_service: AccountService = field(init=False)

    def __post_init__(self) -> None:
        self.memo_service = MemoService(self.memo_store, self.user_store, self.object_store)
        self.account_service = AccountService(self.user_store)

    async def aclose(self) -> None:
        await self.identity_verifier.close()
        await self.object_store.close()
        if self.firebase_app is not None:
            close_firebase_app(self.firebase_app)
        # Close all pooled connections; PostgreSQL frees the backends.
        await self.engine.dispose()
        logger.info("Application context closed")


def build_object_store(
    settings: Settings,
    firebase_app: Optional[firebase_admin.App] = None,
) -> ObjectStore:
    if settings.storage_backend == "local":
        return LocalObjectStore(
            storage_root=settings.storage_root,
            url_prefix=f"{settings.public_base_url.rstrip('/')}{settings.api_prefix}/files",
            max_upload_size=settings.max_upload_size,
            allowed_extensions=settings.allowed_audio_extensions_set,
        )

    if firebase_app is None:
        raise ValueError("storage_backend=firebase requires an initialized Firebase app")
    return FirebaseObjectStore(
        app=firebase_app,
        bucket_name=settings.firebase_storage_bucket,
        max_upload_size=settings.max_upload_size,
        allowed_extensions=settings.allowed_audio_extensions_set,
        timeout_seconds=settings.storage_timeout_seconds,
        retry_max_attempts=settings.retry_max_attempts,
        retry_min_wait=settings.retry_min_wait,
        retry_max_wait=settings.retry_max_wait,
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        ),
    )


def build_context(settings: Settings) -> AppContext:
    """Production wiring: PostgreSQL engine, Firebase identity and storage."""
    engine = build_engine(settings)
    firebase_app = init_firebase_app(settings)

    context = AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        identity_verifier=FirebaseIdentityVerifier(
            firebase_app,
            timeout_seconds=settings.identity_timeout_seconds,
        ),
        object_store=build_object_store(settings, firebase_app),
        firebase_app=firebase_app,
    )
    logger.info(
        "Application context built (storage=%s, database=%s)",
        settings.storage_backend,
        engine.url.render_as_string(hide_password=True),
    )
    return context
