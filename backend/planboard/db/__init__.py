"""Database package."""

from planboard.db.base import Base, BaseModel
from planboard.db.session import DBSession, get_db_session

__all__ = ["Base", "BaseModel", "DBSession", "get_db_session"]
