"""
TrailMemo Backend — Account Route Handlers
============================================

    POST   /auth/register   create the caller's profile (201)
    GET    /auth/me         the caller's profile (404 until registered)
    PUT    /auth/me         edit display_name / department
    DELETE /auth/me         remove the profile and every memo it owns (204)

The subject id and email always come from the verified token, never from
the request body.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from trailmemo.context import AppContext
from trailmemo.dependencies import get_context, get_current_identity, get_db_session
from trailmemo.schemas.common import ErrorResponse
from trailmemo.schemas.user import RegisterRequest, UpdateProfileRequest, UserResponse
from trailmemo.services.identity import VerifiedIdentity

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
    responses={401: {"model": ErrorResponse}},
)


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Already registered", "model": ErrorResponse}},
)
async def register(
    body: RegisterRequest,
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await context.account_service.register(db, identity, body)


@router.get("/me", response_model=UserResponse, responses={404: {"model": ErrorResponse}})
async def me(
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await context.account_service.me(db, identity)


@router.put("/me", response_model=UserResponse, responses={404: {"model": ErrorResponse}})
async def update_me(
    body: UpdateProfileRequest,
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await context.account_service.update_profile(db, identity, body)


@router.delete(
    "/me",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={404: {"model": ErrorResponse}},
)
async def delete_me(
    identity: VerifiedIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await context.account_service.delete_account(db, identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
