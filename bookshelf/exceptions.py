"""
Error taxonomy for the Bookshelf API.

Every error carries the HTTP status it is surfaced with; the exception
handlers in ``bookshelf.main`` turn them into ``ErrorResponse`` bodies.
"""

from typing import Dict, Optional

from fastapi import status


class BookshelfError(Exception):
    """Base class for errors that terminate a request."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers: Optional[Dict[str, str]] = None

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class Unauthenticated(BookshelfError):
    """Missing, malformed or unverifiable bearer credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(BookshelfError):
    """Authenticated caller is not allowed to touch the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(BookshelfError):
    status_code = status.HTTP_404_NOT_FOUND


class BadRequest(BookshelfError):
    status_code = status.HTTP_400_BAD_REQUEST


class DeliveryFailed(BookshelfError):
    """The mail transport refused or failed to deliver a message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InternalError(BookshelfError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
