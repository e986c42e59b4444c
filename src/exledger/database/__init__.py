"""Database layer for exledger application."""

from exledger.database.base import Database
from exledger.database.factories import create_memory_database, create_sqlite_database

__all__ = ["Database", "create_memory_database", "create_sqlite_database"]
