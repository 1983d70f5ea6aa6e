"""Storage layer for the scheduled alert store."""

from src.storage.database import Database, close_database, get_database

__all__ = ["Database", "close_database", "get_database"]
