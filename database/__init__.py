"""Database module for the local fallback store."""

from database.connection import Database

__all__ = ["Database"]
