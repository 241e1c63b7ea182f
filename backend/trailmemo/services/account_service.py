"""
TrailMemo Backend — Account Service
=====================================

What:  Registration and profile management for the authenticated caller.
Who:   Route handlers in routes/auth.py.

A user row exists only after an explicit POST /auth/register. Registration
is never an upsert: a second attempt for the same subject id is a
ConflictError. The color is derived from the subject id once, here.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.exceptions import ConflictError, NotFoundError
from trailmemo.models.user import User
from trailmemo.schemas.user import RegisterRequest, UpdateProfileRequest, UserResponse
from trailmemo.services.color import generate_user_color
from trailmemo.services.identity import VerifiedIdentity
from trailmemo.services.user_store import UserStore

logger = logging.getLogger(__name__)


class AccountService:

    def __init__(self, user_store: UserStore):
        self.user_store = user_store

    async def register(
        self,
        db: AsyncSession,
        identity: VerifiedIdentity,
        request: RegisterRequest,
    ) -> UserResponse:
        existing = await self.user_store.get_by_id(db, identity.subject_id)
        if existing is not None:
            raise ConflictError(
                message="User already registered",
                context={"user_id": identity.subject_id},
            )

        user = User(
            user_id=identity.subject_id,
            email=identity.email,
            display_name=request.display_name,
            department=request.department,
            color=generate_user_color(identity.subject_id),
        )
        await self.user_store.create(db, user)
        return UserResponse.model_validate(user)

    async def me(self, db: AsyncSession, identity: VerifiedIdentity) -> UserResponse:
        user = await self._require_user(db, identity.subject_id)
        return UserResponse.model_validate(user)

    async def update_profile(
        self,
        db: AsyncSession,
        identity: VerifiedIdentity,
        request: UpdateProfileRequest,
    ) -> UserResponse:
        """
        Changes display_name and/or department. Memos keep the display
        name they were recorded with.
        """
        user = await self._require_user(db, identity.subject_id)
        if request.display_name is not None:
            user.display_name = request.display_name
        if "department" in request.model_fields_set:
            user.department = request.department

        updated = await self.user_store.update(db, user)
        return UserResponse.model_validate(updated)

    async def delete_account(self, db: AsyncSession, identity: VerifiedIdentity) -> None:
        """Removes the user row; their memos go with it (FK cascade)."""
        await self.user_store.delete(db, identity.subject_id)
        logger.info("Account deleted: %s", identity.subject_id)

    async def _require_user(self, db: AsyncSession, user_id: str) -> User:
        user = await self.user_store.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError(
                resource="user",
                resource_id=user_id,
                message="User not found. Please register first.",
            )
        return user
