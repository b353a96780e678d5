"""
FastAPI main application for the Bookshelf API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Union

import structlog
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookshelf.auth import TokenVerifier, require_matching_email
from bookshelf.config import config
from bookshelf.database import BookStore, ReviewStore, check_database_health
from bookshelf.dependencies import get_book_store, get_contact_mailer, get_review_store
from bookshelf.exceptions import BookshelfError
from bookshelf.models import (
    BookCreate, BookListResponse, BookQueryParams, BookResponse, BookUpdate,
    ContactMessage, DeleteResult, ErrorResponse, HealthResponse, InsertResult,
    MessageResponse, ReadingStatusUpdate, ReviewCommentUpdate, ReviewCreate,
    ReviewResponse, UpdateResult, UpvoteRequest, VerifiedIdentity
)
from bookshelf.notifications import ContactMailer

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store, identity and mail clients and attach them to app.state."""
    logger.info("Starting Bookshelf API")

    client = AsyncIOMotorClient(config.mongodb_uri)
    database = client[config.mongodb_database]
    try:
        await database.command("ping")
        logger.info("Database connection established", database=config.mongodb_database)

        book_store = BookStore(database[config.books_collection], popular_limit=config.popular_books_limit)
        review_store = ReviewStore(database[config.reviews_collection])
        await book_store.ensure_indexes()
        await review_store.ensure_indexes()
    except PyMongoError as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    app.state.database = database
    app.state.book_store = book_store
    app.state.review_store = review_store
    app.state.contact_mailer = ContactMailer(
        username=config.email_user,
        password=config.email_pass,
        hostname=config.smtp_host,
        port=config.smtp_port
    )

    if config.fb_service_key:
        app.state.token_verifier = TokenVerifier.from_service_key(config.fb_service_key)
    else:
        app.state.token_verifier = None
        logger.warning("FB_SERVICE_KEY is not set; authenticated routes will fail")

    yield

    logger.info("Shutting down Bookshelf API")
    client.close()


app = FastAPI(
    title=config.api_title,
    description="""
    JSON API for a book-tracking application.

    ## Features

    * **Books**: Catalog books with reading status, browse, search and filter by category
    * **Upvotes**: Vote for other readers' books; see the most popular ones
    * **Reviews**: One review per reader and book
    * **Contact**: Contact form delivered by email

    ## Authentication

    Owner-scoped routes require a Firebase ID token:

    ```
    Authorization: Bearer <id token>
    ```
    """,
    version=config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(BookshelfError)
async def bookshelf_exception_handler(request: Request, exc: BookshelfError):
    """Handle domain errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            detail=exc.detail,
            status_code=exc.status_code
        ).model_dump(),
        headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed bodies and query parameters as 400."""
    logger.info("Rejected malformed request", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Invalid request",
            detail=jsonable_encoder(exc.errors()),
            status_code=status.HTTP_400_BAD_REQUEST
        ).model_dump()
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            status_code=exc.status_code
        ).model_dump(),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump()
    )


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    database = getattr(request.app.state, "database", None)
    db_status = "unavailable"
    if database is not None:
        health_info = await check_database_health(database)
        db_status = health_info["status"]

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=config.api_version,
        database_status=db_status
    )


# Books endpoints
@app.get("/all-books", response_model=BookListResponse, tags=["Books"])
async def get_all_books(
    filtered_status: Optional[str] = Query(None, alias="filteredStatus", description="Exact reading status"),
    search_params: Optional[str] = Query(None, alias="searchParams", description="Title or author substring"),
    page: int = Query(1, ge=1, description="Page number (starts from 1)"),
    limit: int = Query(config.default_page_size, ge=1, le=config.max_page_size, description="Items per page"),
    book_store: BookStore = Depends(get_book_store)
):
    """
    Get books with filtering and pagination.

    - **filteredStatus**: Only books with this reading status
    - **searchParams**: Case-insensitive match on title or author
    - **page**: Page number (starts from 1)
    - **limit**: Items per page
    """
    query_params = BookQueryParams(
        status=filtered_status or None,
        search=search_params or None,
        page=page,
        per_page=limit
    )
    return await book_store.list_books(query_params)


@app.get("/books", response_model=List[BookResponse], tags=["Books"])
async def get_my_books(
    email: Optional[str] = Query(None, description="Owner email; must match the token"),
    identity: VerifiedIdentity = Depends(require_matching_email),
    book_store: BookStore = Depends(get_book_store)
):
    """Get all books owned by the authenticated user."""
    return await book_store.list_books_by_owner(email or identity.email)


@app.get("/book/{book_id}", response_model=BookResponse, tags=["Books"])
async def get_book(book_id: str, book_store: BookStore = Depends(get_book_store)):
    """Get a single book by ID."""
    return await book_store.get_book(book_id)


@app.get("/update-book/{book_id}", response_model=BookResponse, tags=["Books"])
async def get_book_for_update(
    book_id: str,
    identity: VerifiedIdentity = Depends(require_matching_email),
    book_store: BookStore = Depends(get_book_store)
):
    """Get a book for editing. Only its owner may load it."""
    return await book_store.get_book_for_owner(book_id, identity.email)


@app.get("/popular-books", response_model=List[BookResponse], tags=["Books"])
async def get_popular_books(book_store: BookStore = Depends(get_book_store)):
    """Get the most upvoted books."""
    return await book_store.list_popular_books()


@app.get("/categories/{category}", response_model=List[BookResponse], tags=["Books"])
async def get_books_by_category(category: str, book_store: BookStore = Depends(get_book_store)):
    """Get books in a category (case-insensitive)."""
    return await book_store.list_books_by_category(category)


@app.post("/add-book", response_model=InsertResult, tags=["Books"])
async def add_book(
    book: BookCreate,
    identity: VerifiedIdentity = Depends(require_matching_email),
    book_store: BookStore = Depends(get_book_store)
):
    """Add a book owned by the authenticated user."""
    return await book_store.create_book(book, identity.email)


@app.patch("/update-book/{book_id}", response_model=UpdateResult, tags=["Books"])
async def update_book(
    book_id: str,
    update: BookUpdate,
    identity: VerifiedIdentity = Depends(require_matching_email),
    book_store: BookStore = Depends(get_book_store)
):
    """Update the details of a book owned by the authenticated user."""
    return await book_store.update_book(book_id, update, identity.email)


@app.patch("/upvote/{book_id}", response_model=Union[UpdateResult, MessageResponse], tags=["Books"])
async def upvote_book(
    book_id: str,
    vote: UpvoteRequest,
    book_store: BookStore = Depends(get_book_store)
):
    """Upvote a book. Owners cannot upvote their own books."""
    return await book_store.upvote_book(book_id, vote.email)


@app.patch("/book/{book_id}", response_model=UpdateResult, tags=["Books"])
async def update_reading_status(
    book_id: str,
    body: ReadingStatusUpdate,
    book_store: BookStore = Depends(get_book_store)
):
    """Set the reading status of a book."""
    return await book_store.set_reading_status(book_id, body.status)


@app.delete("/books/{book_id}", response_model=DeleteResult, tags=["Books"])
async def delete_book(
    book_id: str,
    identity: VerifiedIdentity = Depends(require_matching_email),
    book_store: BookStore = Depends(get_book_store)
):
    """Delete a book owned by the authenticated user."""
    return await book_store.delete_book(book_id, identity.email)


# Reviews endpoints
@app.get("/all-reviews/{book_id}", response_model=List[ReviewResponse], tags=["Reviews"])
async def get_reviews(book_id: str, review_store: ReviewStore = Depends(get_review_store)):
    """Get all reviews for a book."""
    return await review_store.list_reviews(book_id)


@app.post("/reviews", response_model=Union[InsertResult, MessageResponse], tags=["Reviews"])
async def add_review(review: ReviewCreate, review_store: ReviewStore = Depends(get_review_store)):
    """Add a review. A second review of the same book by the same reviewer is refused."""
    return await review_store.create_review(review)


@app.patch("/update-review/{review_id}", response_model=UpdateResult, tags=["Reviews"])
async def update_review(
    review_id: str,
    body: ReviewCommentUpdate,
    review_store: ReviewStore = Depends(get_review_store)
):
    """Replace the comment of a review."""
    return await review_store.update_review(review_id, body.comment)


@app.delete("/reviews/{review_id}", response_model=DeleteResult, tags=["Reviews"])
async def delete_review(review_id: str, review_store: ReviewStore = Depends(get_review_store)):
    """Delete a review."""
    return await review_store.delete_review(review_id)


# Contact endpoint
@app.post("/contact", response_model=MessageResponse, tags=["Contact"])
async def contact(message: ContactMessage, mailer: ContactMailer = Depends(get_contact_mailer)):
    """Send a contact form message to the site operator."""
    return await mailer.send_contact_message(message)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bookshelf.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="info"
    )
