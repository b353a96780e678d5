"""
Test cases for bearer-token verification and the owner-match guard.
"""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from firebase_admin import auth as firebase_auth

from bookshelf.auth import TokenVerifier, get_verified_identity, require_matching_email
from bookshelf.exceptions import Forbidden, Unauthenticated
from bookshelf.models import VerifiedIdentity
from tests.conftest import OTHER_EMAIL, OTHER_HEADERS, OWNER_EMAIL, OWNER_HEADERS


class TestTokenVerifier:
    """Test cases for TokenVerifier."""

    @pytest.mark.asyncio
    async def test_verify_returns_identity(self):
        app = MagicMock()
        verifier = TokenVerifier(app)

        with patch.object(
            firebase_auth, "verify_id_token", return_value={"uid": "u1", "email": OWNER_EMAIL}
        ) as verify_id_token:
            identity = await verifier.verify("good-token")

        verify_id_token.assert_called_once_with("good-token", app=app)
        assert identity == VerifiedIdentity(uid="u1", email=OWNER_EMAIL)

    @pytest.mark.asyncio
    async def test_verify_rejects_invalid_token(self):
        verifier = TokenVerifier(MagicMock())

        with patch.object(
            firebase_auth, "verify_id_token", side_effect=firebase_auth.InvalidIdTokenError("bad signature")
        ):
            with pytest.raises(Unauthenticated):
                await verifier.verify("bad-token")

    @pytest.mark.asyncio
    async def test_verify_rejects_malformed_token(self):
        verifier = TokenVerifier(MagicMock())

        with patch.object(firebase_auth, "verify_id_token", side_effect=ValueError("Illegal ID token")):
            with pytest.raises(Unauthenticated):
                await verifier.verify("")

    def test_from_service_key(self):
        service_account = {"type": "service_account", "project_id": "books"}
        service_key = base64.b64encode(json.dumps(service_account).encode("utf-8")).decode("ascii")

        with patch("bookshelf.auth.firebase_admin.get_app", side_effect=ValueError("no app")), \
                patch("bookshelf.auth.firebase_admin.initialize_app") as initialize_app, \
                patch("bookshelf.auth.credentials.Certificate") as certificate:
            verifier = TokenVerifier.from_service_key(service_key)

        certificate.assert_called_once_with(service_account)
        initialize_app.assert_called_once_with(certificate.return_value, name="bookshelf")
        assert verifier.app is initialize_app.return_value

    def test_from_service_key_not_base64_json(self):
        with pytest.raises(ValueError):
            TokenVerifier.from_service_key("this is not a key")


class TestDependencies:
    """Test cases for the authentication dependencies."""

    @pytest.mark.asyncio
    async def test_missing_credentials(self, mock_token_verifier):
        with pytest.raises(Unauthenticated):
            await get_verified_identity(None, mock_token_verifier)

        mock_token_verifier.verify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_credentials_are_verified(self, mock_token_verifier):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="owner-token")

        identity = await get_verified_identity(credentials, mock_token_verifier)

        assert identity.email == OWNER_EMAIL

    @pytest.mark.asyncio
    async def test_matching_email_passes(self):
        identity = VerifiedIdentity(uid="u1", email=OWNER_EMAIL)

        assert await require_matching_email(OWNER_EMAIL, identity) is identity
        assert await require_matching_email(None, identity) is identity

    @pytest.mark.asyncio
    async def test_mismatched_email_fails_closed(self):
        identity = VerifiedIdentity(uid="u1", email=OWNER_EMAIL)

        with pytest.raises(Forbidden):
            await require_matching_email(OTHER_EMAIL, identity)


class TestProtectedRoutes:
    """Test cases for authentication on owner-scoped routes."""

    def test_missing_header(self, client):
        response = client.get("/books")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "Access denied: Invalid token provided."

    def test_wrong_scheme(self, client):
        response = client.get("/books", headers={"Authorization": "Basic b3duZXI6cHc="})

        assert response.status_code == 401

    def test_unverifiable_token(self, client):
        response = client.get("/books", headers={"Authorization": "Bearer forged"})

        assert response.status_code == 401
        assert response.json()["error"] == "Access denied: Failed to verify token."

    def test_email_mismatch_stops_before_store(self, client, books_collection):
        response = client.get(f"/books?email={OWNER_EMAIL}", headers=OTHER_HEADERS)

        assert response.status_code == 403
        books_collection.find.assert_not_called()

    def test_own_books(self, client, books_collection):
        response = client.get(f"/books?email={OWNER_EMAIL}", headers=OWNER_HEADERS)

        assert response.status_code == 200
        assert response.json() == []
        books_collection.find.assert_called_once_with({"email": OWNER_EMAIL})

    def test_own_books_default_to_token_email(self, client, books_collection):
        response = client.get("/books", headers=OTHER_HEADERS)

        assert response.status_code == 200
        books_collection.find.assert_called_once_with({"email": OTHER_EMAIL})

    def test_mismatch_on_delete_stops_before_store(self, client, books_collection):
        response = client.delete(
            f"/books/65a000000000000000000001?email={OWNER_EMAIL}",
            headers=OTHER_HEADERS
        )

        assert response.status_code == 403
        books_collection.find_one.assert_not_awaited()
        books_collection.delete_one.assert_not_awaited()
