"""
TrailMemo Backend — User Store
================================

What:  Persistence for the `users` table.
Who:   AccountService (registration, profile), MemoService (creator lookup).

Same transaction contract as MemoStore: flush, never commit.
Deleting a user is a single DELETE; the database cascades to memos.
"""

import logging
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.exceptions import ConflictError, DatabaseError, NotFoundError
from trailmemo.models.user import User

logger = logging.getLogger(__name__)


def _persistence_error(operation: str, exc: Exception, **context: Any) -> DatabaseError:
    logger.error("User store %s failed: %s", operation, str(exc), exc_info=True)
    return DatabaseError(
        context={"operation": operation, "error_type": type(exc).__name__, **context},
    )


class UserStore:

    async def create(self, db: AsyncSession, user: User) -> User:
        """Insert `user`. A duplicate user_id or email raises ConflictError."""
        try:
            db.add(user)
            await db.flush()
        except IntegrityError as e:
            logger.warning("User insert conflict for %s: %s", user.user_id, str(e.orig))
            raise ConflictError(
                message="User already registered",
                context={"user_id": user.user_id},
            )
        except SQLAlchemyError as e:
            raise _persistence_error("create", e, user_id=user.user_id)

        logger.info("User registered: %s", user.user_id)
        return user

    async def get_by_id(self, db: AsyncSession, user_id: str) -> Optional[User]:
        stmt = (
            select(User)
            .where(User.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        try:
            return (await db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _persistence_error("get_by_id", e, user_id=user_id)

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        try:
            result = await db.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _persistence_error("get_by_email", e)

    async def update(self, db: AsyncSession, user: User) -> User:
        """
        Write `user.display_name` and `user.department`.

        Every other column (email, color, created_at) is immutable and is
        never part of the statement.
        """
        stmt = (
            update(User)
            .where(User.user_id == user.user_id)
            .values(display_name=user.display_name, department=user.department)
        )
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise _persistence_error("update", e, user_id=user.user_id)

        if result.rowcount == 0:
            raise NotFoundError(resource="user", resource_id=user.user_id)

        updated = await self.get_by_id(db, user.user_id)
        if updated is None:
            raise NotFoundError(resource="user", resource_id=user.user_id)
        return updated

    async def delete(self, db: AsyncSession, user_id: str) -> None:
        try:
            result = await db.execute(delete(User).where(User.user_id == user_id))
        except SQLAlchemyError as e:
            raise _persistence_error("delete", e, user_id=user_id)

        if result.rowcount == 0:
            raise NotFoundError(resource="user", resource_id=user_id)

        logger.info("User deleted: %s (memos cascaded)", user_id)
