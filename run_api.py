#!/usr/bin/env python3
"""
Script to run the Bookshelf API server.
"""

import uvicorn

from bookshelf.config import config
from utilities.logger import get_logger, setup_logging


def main():
    """Run the API server."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    logger = get_logger(__name__)
    logger.info(
        "Starting Bookshelf API server",
        host=config.host,
        port=config.port,
        debug=config.debug,
        database=config.mongodb_database
    )

    uvicorn.run(
        "bookshelf.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_config=None,
        access_log=True
    )


if __name__ == "__main__":
    main()
