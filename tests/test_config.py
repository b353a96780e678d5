"""
Test cases for application settings.
"""

import pytest
from pydantic import ValidationError

from bookshelf.config import BookshelfConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    config = BookshelfConfig(_env_file=None)

    assert config.port == 5000
    assert config.mongodb_database == "booksDB"
    assert config.default_page_size == 9
    assert config.popular_books_limit == 6


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://db.example:27017")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("FB_SERVICE_KEY", "e30=")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = BookshelfConfig(_env_file=None)

    assert config.mongodb_uri == "mongodb://db.example:27017"
    assert config.port == 8080
    assert config.fb_service_key == "e30="
    assert config.log_level == "DEBUG"


def test_invalid_log_format():
    with pytest.raises(ValidationError):
        BookshelfConfig(_env_file=None, log_format="xml")


def test_invalid_page_size():
    with pytest.raises(ValidationError):
        BookshelfConfig(_env_file=None, default_page_size=0)
