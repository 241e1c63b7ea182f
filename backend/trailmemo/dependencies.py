"""
TrailMemo Backend — FastAPI Dependencies
==========================================

What:  Request-scoped dependencies resolved from the AppContext.

    get_context           → AppContext on app.state
    get_db_session        → one AsyncSession per request (commit / rollback)
    get_current_identity  → VerifiedIdentity from "Authorization: Bearer <token>"

Transaction Boundary:
    Stores flush; get_db_session commits after the route handler returns
    and rolls back if anything raised. One request = one transaction.
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.context import AppContext
from trailmemo.exceptions import AuthenticationError
from trailmemo.services.identity import VerifiedIdentity

logger = logging.getLogger(__name__)


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError("AppContext is not initialized; was the lifespan skipped?")
    return context


async def get_db_session(
    context: AppContext = Depends(get_context),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session, commit on success, roll back on any exception.

    The exception is re-raised so the registered handlers produce the
    response.
    """
    async with context.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing authorization header")

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Invalid authorization header format")
    return token


async def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    context: AppContext = Depends(get_context),
) -> VerifiedIdentity:
    token = extract_bearer_token(authorization)
    identity = await context.identity_verifier.verify(token)
    logger.debug("Authenticated %s", identity.subject_id)
    return identity
