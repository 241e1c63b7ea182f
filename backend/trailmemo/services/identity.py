"""
TrailMemo Backend — Identity Verification
===========================================

What:  Turns a bearer credential into a VerifiedIdentity (subject id + email).
Why an interface: the token format belongs to the identity provider. Routes
       and services depend on IdentityVerifier only, so tests substitute a
       fake verifier and the provider can change without touching callers.
Who:   get_current_identity() (dependencies.py) on every authenticated route.

Error Translation (FirebaseIdentityVerifier):
    InvalidIdTokenError (incl. expired / revoked)  → AuthenticationError (401)
    malformed token (ValueError)                   → AuthenticationError (401)
    CertificateFetchError, other FirebaseError     → UpstreamError (502)
    timeout                                        → UpstreamError (502)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from trailmemo.exceptions import AuthenticationError, UpstreamError

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


@dataclass(frozen=True)
class VerifiedIdentity:
    """
    subject_id is the provider's stable user id (users.user_id).
    email may be empty when the provider account has none.
    """

    subject_id: str
    email: str = ""


class IdentityVerifier(ABC):
    """
    Contract:
        - verify() never returns for a bad token; it raises AuthenticationError
        - provider outages raise UpstreamError, never AuthenticationError,
          so clients do not discard a valid session during an outage
    """

    @abstractmethod
    async def verify(self, token: str) -> VerifiedIdentity:
        ...

    async def close(self) -> None:
        """Release provider resources. Default: nothing to release."""
        return None


class FirebaseIdentityVerifier(IdentityVerifier):
    """Firebase Auth ID-token verification through firebase-admin."""

    def __init__(self, app: firebase_admin.App, timeout_seconds: float = 10.0):
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def verify(self, token: str) -> VerifiedIdentity:
        # verify_id_token fetches Google's public certificates over HTTP on
        # a cache miss; run it off the event loop.
        try:
            claims = await asyncio.wait_for(
                asyncio.to_thread(auth.verify_id_token, token, app=self.app),
                timeout=self.timeout_seconds,
            )
        except auth.InvalidIdTokenError as e:
            logger.info("Rejected ID token: %s", type(e).__name__)
            raise AuthenticationError(INVALID_TOKEN_MESSAGE)
        except auth.CertificateFetchError as e:
            logger.error("Could not fetch token signing certificates: %s", str(e))
            raise UpstreamError(
                message="Identity provider is unavailable. Please try again later.",
                context={"error_type": type(e).__name__},
            )
        except FirebaseError as e:
            logger.error("Identity provider error: %s", str(e))
            raise UpstreamError(
                message="Identity provider is unavailable. Please try again later.",
                context={"error_type": type(e).__name__},
            )
        except asyncio.TimeoutError:
            logger.error("Token verification timed out after %.1fs", self.timeout_seconds)
            raise UpstreamError(
                message="Identity provider did not respond. Please try again later.",
                context={"timeout_seconds": self.timeout_seconds},
            )
        except ValueError as e:
            # Empty or structurally malformed token.
            logger.info("Malformed ID token: %s", str(e))
            raise AuthenticationError(INVALID_TOKEN_MESSAGE)

        subject_id = claims.get("uid") or claims.get("sub")
        if not subject_id:
            raise AuthenticationError(INVALID_TOKEN_MESSAGE)

        email: Optional[str] = claims.get("email")
        if not email:
            email = await self._lookup_email(subject_id)

        return VerifiedIdentity(subject_id=subject_id, email=email or "")

    async def _lookup_email(self, subject_id: str) -> Optional[str]:
        """Tokens minted by some sign-in providers omit the email claim."""
        try:
            record = await asyncio.wait_for(
                asyncio.to_thread(auth.get_user, subject_id, app=self.app),
                timeout=self.timeout_seconds,
            )
        except auth.UserNotFoundError:
            raise AuthenticationError(INVALID_TOKEN_MESSAGE)
        except (FirebaseError, asyncio.TimeoutError) as e:
            logger.error("User lookup failed for %s: %s", subject_id, str(e))
            raise UpstreamError(
                message="Identity provider is unavailable. Please try again later.",
                context={"error_type": type(e).__name__},
            )
        return record.email
