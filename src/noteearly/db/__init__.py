"""Database module for relational persistence.

Provides:
- Engine and session management (SQLAlchemy)
- Schema initialization
- ORM models for profiles, reading modules, progress and billing
"""

from noteearly.db.database import Base, get_engine, get_session, init_db, utcnow

__all__ = ["Base", "get_engine", "get_session", "init_db", "utcnow"]
