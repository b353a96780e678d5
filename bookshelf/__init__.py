"""
Bookshelf API: backend for a book-tracking application.

This package provides a JSON REST API for:
- Cataloguing books with reading status
- Browsing, searching and filtering books by category
- Upvoting books and listing the most popular ones
- One review per reader and book
- Contact form delivery by email
"""

__version__ = "1.0.0"
