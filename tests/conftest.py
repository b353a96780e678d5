"""
Pytest configuration and shared fixtures.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from bookshelf.auth import TokenVerifier, get_token_verifier
from bookshelf.database import BookStore, ReviewStore
from bookshelf.dependencies import get_book_store, get_contact_mailer, get_review_store
from bookshelf.exceptions import Unauthenticated
from bookshelf.main import app
from bookshelf.models import VerifiedIdentity
from bookshelf.notifications import ContactMailer

OWNER_EMAIL = "a@x.com"
OTHER_EMAIL = "b@x.com"

OWNER_HEADERS = {"Authorization": "Bearer owner-token"}
OTHER_HEADERS = {"Authorization": "Bearer other-token"}

IDENTITIES = {
    "owner-token": VerifiedIdentity(uid="owner-uid", email=OWNER_EMAIL),
    "other-token": VerifiedIdentity(uid="other-uid", email=OTHER_EMAIL),
}


def make_cursor(documents):
    """Create a Motor-like cursor whose chained calls return itself."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=documents)
    return cursor


def make_collection():
    """Create a mock Motor collection."""
    collection = MagicMock()
    collection.find.return_value = make_cursor([])
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock()
    collection.update_many = AsyncMock()
    collection.delete_one = AsyncMock()
    collection.create_index = AsyncMock()
    return collection


@pytest.fixture
def books_collection():
    return make_collection()


@pytest.fixture
def reviews_collection():
    return make_collection()


@pytest.fixture
def book_store(books_collection):
    return BookStore(books_collection, popular_limit=6)


@pytest.fixture
def review_store(reviews_collection):
    return ReviewStore(reviews_collection)


@pytest.fixture
def sample_book():
    """Create a sample book document owned by OWNER_EMAIL."""
    return {
        "_id": ObjectId(),
        "email": OWNER_EMAIL,
        "user_name": "Reader A",
        "book_title": "The Left Hand of Darkness",
        "book_author": "Ursula K. Le Guin",
        "book_category": "Fiction",
        "book_image": "https://example.com/cover.jpg",
        "total_page": 304,
        "reading_status": "Reading",
        "upvote": [OTHER_EMAIL],
        "upvote_count": 1,
    }


@pytest.fixture
def sample_review(sample_book):
    return {
        "_id": ObjectId(),
        "reviewerEmail": OTHER_EMAIL,
        "reviewedBookId": str(sample_book["_id"]),
        "comment": "Loved it",
        "reviewerName": "Reader B",
    }


@pytest.fixture
def mock_token_verifier():
    """Token verifier that accepts the two known test tokens."""
    def verify(token):
        if token not in IDENTITIES:
            raise Unauthenticated("Access denied: Failed to verify token.")
        return IDENTITIES[token]

    verifier = MagicMock(spec=TokenVerifier)
    verifier.verify = AsyncMock(side_effect=verify)
    return verifier


@pytest.fixture
def mock_contact_mailer():
    return AsyncMock(spec=ContactMailer)


@pytest.fixture
def client(book_store, review_store, mock_token_verifier, mock_contact_mailer):
    """Create test client wired to mocked collections, verifier and mailer."""
    app.dependency_overrides[get_book_store] = lambda: book_store
    app.dependency_overrides[get_review_store] = lambda: review_store
    app.dependency_overrides[get_token_verifier] = lambda: mock_token_verifier
    app.dependency_overrides[get_contact_mailer] = lambda: mock_contact_mailer
    yield TestClient(app)
    app.dependency_overrides.clear()
