"""
Store adapters for the books and reviews collections.

Each adapter wraps a single Motor collection and performs one store
operation per API call, returning pydantic response models.
"""

import math
import re
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from bookshelf.exceptions import BadRequest, Forbidden, InternalError, NotFound
from bookshelf.models import (
    BookCreate, BookListResponse, BookQueryParams, BookResponse, BookUpdate,
    DeleteResult, InsertResult, MessageResponse, ReadingStatus, ReviewCreate,
    ReviewResponse, UpdateResult
)

logger = structlog.get_logger(__name__)

SELF_UPVOTE_MESSAGE = "You cannot upvote your own book"
DUPLICATE_REVIEW_MESSAGE = "You have already added a review for this book"
OWNER_MISMATCH_MESSAGE = "Access forbidden: Email does not match authenticated user."


def parse_object_id(value: str) -> ObjectId:
    """
    Convert a path identifier into an ObjectId.

    Raises:
        BadRequest: If the value is not a valid ObjectId
    """
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise BadRequest(f"Invalid id: {value!r}") from None


def serialize_document(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy a store document, rendering ``_id`` as its hex string."""
    serialized = dict(document)
    if "_id" in serialized:
        serialized["_id"] = str(serialized["_id"])
    return serialized


def contains_pattern(text: str) -> Dict[str, str]:
    """Case-insensitive literal substring match."""
    return {"$regex": re.escape(text), "$options": "i"}


def equals_pattern(text: str) -> Dict[str, str]:
    """Case-insensitive literal whole-value match."""
    return {"$regex": f"^{re.escape(text)}$", "$options": "i"}


def total_pages_for(total: int, per_page: int) -> int:
    return math.ceil(total / per_page)


async def check_database_health(database: AsyncIOMotorDatabase) -> Dict:
    """
    Perform database health check.

    Returns:
        Dictionary with health status
    """
    try:
        await database.command("ping")
        return {"status": "healthy"}
    except PyMongoError as e:
        logger.error("Database health check failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}


class BookStore:
    """CRUD operations against the books collection."""

    def __init__(self, collection: AsyncIOMotorCollection, popular_limit: int = 6):
        self.collection = collection
        self.popular_limit = popular_limit

    async def ensure_indexes(self) -> None:
        """
        Create indexes for the listing routes and backfill upvote counters.

        Books inserted before ``upvote_count`` existed get it derived from
        their ``upvote`` sequence so the popular ranking covers them.
        """
        try:
            await self.collection.create_index("email")
            await self.collection.create_index("reading_status")
            await self.collection.create_index("book_category")
            await self.collection.create_index([("upvote_count", DESCENDING), ("_id", ASCENDING)])

            result = await self.collection.update_many(
                {"upvote_count": {"$exists": False}},
                [{"$set": {"upvote_count": {"$size": {"$ifNull": ["$upvote", []]}}}}]
            )
            logger.info("Book indexes ready", backfilled=result.modified_count)
        except PyMongoError as e:
            logger.error("Failed to create book indexes", error=str(e))
            raise

    async def list_books(self, query_params: BookQueryParams) -> BookListResponse:
        """
        Get books with filtering and offset pagination.

        Args:
            query_params: Status filter, search text and page window

        Returns:
            BookListResponse with the requested page
        """
        filter_query: Dict[str, Any] = {}
        if query_params.status:
            filter_query["reading_status"] = query_params.status
        if query_params.search:
            filter_query["$or"] = [
                {"book_title": contains_pattern(query_params.search)},
                {"book_author": contains_pattern(query_params.search)},
            ]

        try:
            total = await self.collection.count_documents(filter_query)
            cursor = (
                self.collection.find(filter_query)
                .sort("_id", ASCENDING)
                .skip(query_params.skip)
                .limit(query_params.per_page)
            )
            documents = await cursor.to_list(length=query_params.per_page)
        except PyMongoError as e:
            logger.error("Failed to list books", error=str(e), query_params=query_params.model_dump())
            raise InternalError("Failed to retrieve books") from e

        total_pages = total_pages_for(total, query_params.per_page)
        return BookListResponse(
            books=[BookResponse.model_validate(serialize_document(doc)) for doc in documents],
            total=total,
            page=query_params.page,
            per_page=query_params.per_page,
            total_pages=total_pages,
            has_next=query_params.page < total_pages,
            has_prev=query_params.page > 1
        )

    async def list_books_by_owner(self, email: str) -> List[BookResponse]:
        return await self._find_all({"email": email}, "Failed to list owner books", email=email)

    async def list_books_by_category(self, category: str) -> List[BookResponse]:
        return await self._find_all(
            {"book_category": equals_pattern(category)},
            "Failed to list books by category",
            category=category
        )

    async def list_popular_books(self, limit: Optional[int] = None) -> List[BookResponse]:
        """
        Get the most upvoted books.

        Ranked by the ``upvote_count`` counter descending; ties keep insertion
        order (``_id`` ascending).
        """
        limit = limit or self.popular_limit
        try:
            cursor = (
                self.collection.find({})
                .sort([("upvote_count", DESCENDING), ("_id", ASCENDING)])
                .limit(limit)
            )
            documents = await cursor.to_list(length=limit)
        except PyMongoError as e:
            logger.error("Failed to list popular books", error=str(e))
            raise InternalError("Failed to retrieve popular books") from e

        return [BookResponse.model_validate(serialize_document(doc)) for doc in documents]

    async def get_book(self, book_id: str) -> BookResponse:
        """
        Get a single book by ID.

        Raises:
            BadRequest: If the id is malformed
            NotFound: If no book has this id
        """
        document = await self._find_one(book_id)
        return BookResponse.model_validate(serialize_document(document))

    async def get_book_for_owner(self, book_id: str, identity_email: Optional[str]) -> BookResponse:
        """Get a book for editing; only its owner may load it."""
        document = await self._find_one(book_id)
        if document.get("email") != identity_email:
            logger.warning("Edit access denied", book_id=book_id, email=identity_email)
            raise Forbidden(OWNER_MISMATCH_MESSAGE)
        return BookResponse.model_validate(serialize_document(document))

    async def create_book(self, book: BookCreate, identity_email: Optional[str]) -> InsertResult:
        """
        Insert a new book owned by the caller.

        Raises:
            Forbidden: If the submitted owner email is not the caller's
        """
        if book.email != identity_email:
            logger.warning("Book creation denied", submitted=book.email, email=identity_email)
            raise Forbidden("Forbidden: Email mismatch")

        try:
            result = await self.collection.insert_one(book.to_document())
        except PyMongoError as e:
            logger.error("Failed to insert book", title=book.book_title, error=str(e))
            raise InternalError("Failed to add book") from e

        logger.info("Book created", book_id=str(result.inserted_id), email=identity_email)
        return InsertResult(acknowledged=result.acknowledged, inserted_id=str(result.inserted_id))

    async def update_book(
        self,
        book_id: str,
        update: BookUpdate,
        identity_email: Optional[str]
    ) -> UpdateResult:
        """
        Merge the provided fields into a book owned by the caller.

        Both the submitted owner email and the stored owner must equal the
        caller's verified email.
        """
        if update.email != identity_email:
            logger.warning("Book update denied", book_id=book_id, submitted=update.email, email=identity_email)
            raise Forbidden("Forbidden: Email mismatch")

        document = await self._find_one(book_id)
        if document.get("email") != identity_email:
            logger.warning("Book update denied for non-owner", book_id=book_id, email=identity_email)
            raise Forbidden(OWNER_MISMATCH_MESSAGE)

        fields = update.to_update_document()
        if not fields:
            return UpdateResult(acknowledged=True, matched_count=1, modified_count=0)

        return await self._update_one(document["_id"], {"$set": fields}, "Failed to update book")

    async def upvote_book(self, book_id: str, voter_email: str) -> Union[UpdateResult, MessageResponse]:
        """
        Append a vote to a book's upvote sequence.

        The owner's own vote is refused with a message. Repeated votes from
        the same voter are recorded each time.
        """
        document = await self._find_one(book_id)
        if document.get("email") == voter_email:
            logger.info("Self upvote refused", book_id=book_id, email=voter_email)
            return MessageResponse(message=SELF_UPVOTE_MESSAGE)

        return await self._update_one(
            document["_id"],
            {"$push": {"upvote": voter_email}, "$inc": {"upvote_count": 1}},
            "Failed to upvote book"
        )

    async def set_reading_status(self, book_id: str, reading_status: ReadingStatus) -> UpdateResult:
        object_id = parse_object_id(book_id)
        return await self._update_one(
            object_id,
            {"$set": {"reading_status": reading_status.value}},
            "Failed to update reading status"
        )

    async def delete_book(self, book_id: str, identity_email: Optional[str]) -> DeleteResult:
        """
        Delete a book owned by the caller.

        Raises:
            NotFound: If no book has this id
            Forbidden: If the caller does not own the book
        """
        document = await self._find_one(book_id)
        if document.get("email") != identity_email:
            logger.warning("Book deletion denied", book_id=book_id, email=identity_email)
            raise Forbidden("Forbidden: You are not authorized to delete this book.")

        try:
            result = await self.collection.delete_one({"_id": document["_id"]})
        except PyMongoError as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise InternalError("Failed to delete book") from e

        logger.info("Book deleted", book_id=book_id, email=identity_email)
        return DeleteResult(acknowledged=result.acknowledged, deleted_count=result.deleted_count)

    async def _find_one(self, book_id: str) -> Dict[str, Any]:
        object_id = parse_object_id(book_id)
        try:
            document = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise InternalError("Failed to retrieve book") from e

        if document is None:
            raise NotFound("Book not found")
        return document

    async def _find_all(self, filter_query: Dict[str, Any], failure: str, **context) -> List[BookResponse]:
        try:
            documents = await self.collection.find(filter_query).sort("_id", ASCENDING).to_list(length=None)
        except PyMongoError as e:
            logger.error(failure, error=str(e), **context)
            raise InternalError("Failed to retrieve books") from e

        return [BookResponse.model_validate(serialize_document(doc)) for doc in documents]

    async def _update_one(self, object_id: ObjectId, update: Dict[str, Any], failure: str) -> UpdateResult:
        try:
            result = await self.collection.update_one({"_id": object_id}, update)
        except PyMongoError as e:
            logger.error(failure, book_id=str(object_id), error=str(e))
            raise InternalError(failure) from e

        return UpdateResult(
            acknowledged=result.acknowledged,
            matched_count=result.matched_count,
            modified_count=result.modified_count
        )


class ReviewStore:
    """
    CRUD operations against the reviews collection.

    Reviews reference books by id string only; deleting a book leaves its
    reviews in place.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def ensure_indexes(self) -> None:
        try:
            await self.collection.create_index("reviewedBookId")
            await self.collection.create_index([("reviewerEmail", ASCENDING), ("reviewedBookId", ASCENDING)])
            logger.info("Review indexes ready")
        except PyMongoError as e:
            logger.error("Failed to create review indexes", error=str(e))
            raise

    async def list_reviews(self, book_id: str) -> List[ReviewResponse]:
        try:
            cursor = self.collection.find({"reviewedBookId": book_id}).sort("_id", ASCENDING)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to list reviews", book_id=book_id, error=str(e))
            raise InternalError("Failed to retrieve reviews") from e

        return [ReviewResponse.model_validate(serialize_document(doc)) for doc in documents]

    async def create_review(self, review: ReviewCreate) -> Union[InsertResult, MessageResponse]:
        """
        Add a review unless the reviewer already reviewed this book.

        The existence check and the insert are two separate store calls, so
        concurrent submissions for the same pair can both be inserted.
        """
        try:
            existing = await self.collection.find_one({
                "reviewerEmail": review.reviewer_email,
                "reviewedBookId": review.reviewed_book_id,
            })
            if existing:
                logger.info(
                    "Duplicate review refused",
                    book_id=review.reviewed_book_id,
                    email=review.reviewer_email
                )
                return MessageResponse(message=DUPLICATE_REVIEW_MESSAGE)

            result = await self.collection.insert_one(review.to_document())
        except PyMongoError as e:
            logger.error("Failed to add review", book_id=review.reviewed_book_id, error=str(e))
            raise InternalError("Failed to add review") from e

        logger.info("Review created", review_id=str(result.inserted_id), book_id=review.reviewed_book_id)
        return InsertResult(acknowledged=result.acknowledged, inserted_id=str(result.inserted_id))

    async def update_review(self, review_id: str, comment: str) -> UpdateResult:
        object_id = parse_object_id(review_id)
        try:
            result = await self.collection.update_one({"_id": object_id}, {"$set": {"comment": comment}})
        except PyMongoError as e:
            logger.error("Failed to update review", review_id=review_id, error=str(e))
            raise InternalError("Failed to update review") from e

        return UpdateResult(
            acknowledged=result.acknowledged,
            matched_count=result.matched_count,
            modified_count=result.modified_count
        )

    async def delete_review(self, review_id: str) -> DeleteResult:
        object_id = parse_object_id(review_id)
        try:
            result = await self.collection.delete_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to delete review", review_id=review_id, error=str(e))
            raise InternalError("Failed to delete review") from e

        return DeleteResult(acknowledged=result.acknowledged, deleted_count=result.deleted_count)
