"""Database factory functions for creating database instances."""

import os
from typing import Optional

from tallyup.config import default_db_path
from tallyup.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks TALLYUP_DB_PATH
            environment variable, then defaults to ~/.tallyup/tallyup.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        # Check environment variable
        database_path = os.environ.get("TALLYUP_DB_PATH")

    if database_path is None:
        database_path = default_db_path()

    database_url = f"sqlite:///{database_path}"
    return SQLAlchemyDatabase(database_url)
