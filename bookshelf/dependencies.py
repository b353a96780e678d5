"""
FastAPI dependency providers for the objects built at startup.
"""

from fastapi import Request

from bookshelf.database import BookStore, ReviewStore
from bookshelf.exceptions import InternalError
from bookshelf.notifications import ContactMailer


def _from_state(request: Request, name: str, unavailable: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise InternalError(unavailable)
    return value


def get_book_store(request: Request) -> BookStore:
    return _from_state(request, "book_store", "Database service not available")


def get_review_store(request: Request) -> ReviewStore:
    return _from_state(request, "review_store", "Database service not available")


def get_contact_mailer(request: Request) -> ContactMailer:
    return _from_state(request, "contact_mailer", "Mail service not available")
