"""
Configuration settings for the Bookshelf API.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class BookshelfConfig(BaseSettings):
    """Application settings read from the environment and ``.env``."""

    # API Settings
    api_title: str = "Bookshelf API"
    api_version: str = "1.0.0"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False

    # Database Settings
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "booksDB"
    books_collection: str = "books"
    reviews_collection: str = "reviews"

    # Identity provider (base64-encoded Firebase service account JSON)
    fb_service_key: str = ""

    # Mail transport
    email_user: str = ""
    email_pass: str = ""
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465

    # Listing
    default_page_size: int = 9
    max_page_size: int = 100
    popular_books_limit: int = 6

    # CORS Settings
    cors_origins: List[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("default_page_size", "max_page_size", "popular_books_limit")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("page sizes and limits must be at least 1")
        return v


# Global config instance
config = BookshelfConfig()
