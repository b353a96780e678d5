"""
API models and schemas for the Bookshelf API.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Fields managed by the store; never accepted from a client body.
PROTECTED_BOOK_FIELDS = ("_id", "upvote", "upvote_count")


def check_field_names(extra: Optional[Dict[str, Any]]) -> None:
    """Reject extra keys that MongoDB would read as operators or nested paths."""
    for key in extra or {}:
        if not key or key.startswith("$") or "." in key:
            raise ValueError(f"Invalid field name: {key!r}")


class ReadingStatus(str, Enum):
    """Reading status enumeration."""
    READ = "Read"
    READING = "Reading"
    WANT_TO_READ = "Want-to-Read"


class VerifiedIdentity(BaseModel):
    """Identity derived from a verified bearer credential. Never persisted."""
    uid: str = Field(..., description="Identity provider user id")
    email: Optional[str] = Field(None, description="Verified email claim")


# Request bodies

class BookCreate(BaseModel):
    """Body of ``POST /add-book``. Unknown descriptive fields are kept."""
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., min_length=1, description="Owner email")
    book_title: str = Field(..., min_length=1, description="Book title")
    book_author: str = Field(..., min_length=1, description="Book author")
    book_category: str = Field(..., min_length=1, description="Book category")
    total_page: int = Field(..., ge=0, description="Total page count")
    reading_status: ReadingStatus = Field(ReadingStatus.WANT_TO_READ, description="Reading status")

    @model_validator(mode="after")
    def check_extra_fields(self) -> "BookCreate":
        check_field_names(self.model_extra)
        return self

    def to_document(self) -> Dict[str, Any]:
        """Build the document to insert, with an empty upvote sequence."""
        document = self.model_dump(mode="json")
        for field in PROTECTED_BOOK_FIELDS:
            document.pop(field, None)
        document["upvote"] = []
        document["upvote_count"] = 0
        return document


class BookUpdate(BaseModel):
    """Body of ``PATCH /update-book/{id}``. Only provided fields are set."""
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., min_length=1, description="Owner email")
    book_title: Optional[str] = Field(None, min_length=1)
    book_author: Optional[str] = Field(None, min_length=1)
    book_category: Optional[str] = Field(None, min_length=1)
    total_page: Optional[int] = Field(None, ge=0)
    reading_status: Optional[ReadingStatus] = None

    @model_validator(mode="after")
    def check_extra_fields(self) -> "BookUpdate":
        check_field_names(self.model_extra)
        return self

    def to_update_document(self) -> Dict[str, Any]:
        """Fields for ``$set``; the owner email and store-managed fields are dropped."""
        document = self.model_dump(mode="json", exclude_unset=True)
        for field in PROTECTED_BOOK_FIELDS + ("email",):
            document.pop(field, None)
        return document


class ReadingStatusUpdate(BaseModel):
    """Body of ``PATCH /book/{id}``."""
    status: ReadingStatus


class UpvoteRequest(BaseModel):
    """Body of ``PATCH /upvote/{id}``."""
    email: str = Field(..., min_length=1, description="Voter email")


class ReviewCreate(BaseModel):
    """Body of ``POST /reviews``."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    reviewer_email: str = Field(..., alias="reviewerEmail", min_length=1)
    reviewed_book_id: str = Field(..., alias="reviewedBookId", min_length=1)
    comment: str = Field(..., min_length=1)

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump(mode="json", by_alias=True)
        document.pop("_id", None)
        return document


class ReviewCommentUpdate(BaseModel):
    """Body of ``PATCH /update-review/{id}``."""
    comment: str = Field(..., min_length=1)


class ContactMessage(BaseModel):
    """Body of ``POST /contact``."""
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)

    @field_validator("name", "email")
    @classmethod
    def single_line(cls, v: str) -> str:
        # Both end up in mail headers
        if "\r" in v or "\n" in v:
            raise ValueError("must not contain line breaks")
        return v


# Query parameters

class BookQueryParams(BaseModel):
    """Query parameters for the paginated book listing."""
    status: Optional[str] = Field(None, description="Exact reading status filter")
    search: Optional[str] = Field(None, description="Title or author substring")
    page: int = Field(1, ge=1, description="Page number")
    per_page: int = Field(9, ge=1, description="Items per page")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.per_page


# Responses

class BookResponse(BaseModel):
    """Book document as returned by the API."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., alias="_id", description="Unique book identifier")
    email: Optional[str] = Field(None, description="Owner email")
    book_title: Optional[str] = Field(None, description="Book title")
    book_author: Optional[str] = Field(None, description="Book author")
    book_category: Optional[str] = Field(None, description="Book category")
    total_page: Optional[Union[int, float]] = Field(None, description="Total page count")
    reading_status: Optional[str] = Field(None, description="Reading status")
    upvote: List[Optional[str]] = Field(default_factory=list, description="Voter emails")

    @field_validator("upvote", mode="before")
    @classmethod
    def missing_upvotes(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("total_page")
    @classmethod
    def drop_non_finite_page_count(cls, v: Optional[Union[int, float]]) -> Optional[Union[int, float]]:
        if isinstance(v, float) and not math.isfinite(v):
            return None
        return v


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    model_config = ConfigDict(populate_by_name=True)

    books: List[BookResponse] = Field(..., description="List of books")
    total: int = Field(..., alias="totalBooks", description="Total number of matching books")
    page: int = Field(..., alias="currentPage", description="Current page number")
    per_page: int = Field(..., description="Number of books per page")
    total_pages: int = Field(..., alias="totalPages", description="Total number of pages")
    has_next: bool = Field(..., description="Whether there is a next page")
    has_prev: bool = Field(..., description="Whether there is a previous page")


class ReviewResponse(BaseModel):
    """Review document as returned by the API."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., alias="_id", description="Unique review identifier")
    reviewer_email: Optional[str] = Field(None, alias="reviewerEmail")
    reviewed_book_id: Optional[str] = Field(None, alias="reviewedBookId")
    comment: Optional[str] = None


class InsertResult(BaseModel):
    """Store acknowledgement for an insert."""
    model_config = ConfigDict(populate_by_name=True)

    acknowledged: bool = True
    inserted_id: str = Field(..., alias="insertedId")


class UpdateResult(BaseModel):
    """Store acknowledgement for an update."""
    model_config = ConfigDict(populate_by_name=True)

    acknowledged: bool = True
    matched_count: int = Field(..., alias="matchedCount")
    modified_count: int = Field(..., alias="modifiedCount")


class DeleteResult(BaseModel):
    """Store acknowledgement for a delete."""
    model_config = ConfigDict(populate_by_name=True)

    acknowledged: bool = True
    deleted_count: int = Field(..., alias="deletedCount")


class MessageResponse(BaseModel):
    """Plain notice returned with a 200 status."""
    message: str


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
