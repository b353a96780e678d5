"""
Bearer-token authentication for the Bookshelf API.

Tokens are Firebase ID tokens. A verified token yields a VerifiedIdentity
carrying the caller's email, which owner-scoped routes compare against the
resource they touch.
"""

import base64
import json
from typing import Optional

import firebase_admin
import structlog
from fastapi import Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError

from bookshelf.exceptions import Forbidden, InternalError, Unauthenticated
from bookshelf.models import VerifiedIdentity

logger = structlog.get_logger(__name__)

FIREBASE_APP_NAME = "bookshelf"

# Security scheme; missing credentials are reported as 401 by us, not 403
security = HTTPBearer(auto_error=False)


class TokenVerifier:
    """Verifies Firebase ID tokens against a configured Firebase app."""

    def __init__(self, app: firebase_admin.App):
        self.app = app

    @classmethod
    def from_service_key(cls, service_key: str, name: str = FIREBASE_APP_NAME) -> "TokenVerifier":
        """
        Build a verifier from a base64-encoded service account JSON.

        Args:
            service_key: Base64 text of the service account file
            name: Firebase app name, reused if already initialised

        Raises:
            ValueError: If the key does not decode to a service account
        """
        service_account = json.loads(base64.b64decode(service_key).decode("utf-8"))
        try:
            app = firebase_admin.get_app(name)
        except ValueError:
            app = firebase_admin.initialize_app(credentials.Certificate(service_account), name=name)
        return cls(app)

    async def verify(self, token: str) -> VerifiedIdentity:
        """
        Verify an ID token.

        Returns:
            VerifiedIdentity with the token's uid and email claims

        Raises:
            Unauthenticated: If the token cannot be verified
        """
        try:
            claims = await run_in_threadpool(firebase_auth.verify_id_token, token, app=self.app)
        except (ValueError, FirebaseError) as e:
            logger.warning("Token verification failed", error=str(e))
            raise Unauthenticated("Access denied: Failed to verify token.") from e

        return VerifiedIdentity(uid=claims["uid"], email=claims.get("email"))


def get_token_verifier(request: Request) -> TokenVerifier:
    verifier = getattr(request.app.state, "token_verifier", None)
    if verifier is None:
        logger.error("Token verification requested but no identity provider is configured")
        raise InternalError("Authentication is not configured")
    return verifier


async def get_verified_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: TokenVerifier = Depends(get_token_verifier)
) -> VerifiedIdentity:
    """
    Verify the bearer token from the Authorization header.

    Raises:
        Unauthenticated: If the header is missing, not a Bearer credential,
            or the token fails verification
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Access denied: Invalid token provided.")

    return await verifier.verify(credentials.credentials)


async def require_matching_email(
    email: Optional[str] = Query(None, description="Email the caller claims to act as"),
    identity: VerifiedIdentity = Depends(get_verified_identity)
) -> VerifiedIdentity:
    """
    Reject requests whose ``email`` query parameter is not the caller's.

    Without the parameter the request proceeds unchanged.
    """
    if email and email != identity.email:
        logger.warning("Email does not match token", email=email, token_email=identity.email)
        raise Forbidden("Access forbidden: Email does not match authenticated user.")
    return identity
