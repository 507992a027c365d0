"""Database package"""

from helpdesk.db.session import AsyncSessionLocal, engine, get_db, init_db
from helpdesk.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db", "init_db"]
