"""Database infrastructure for SQLModel + PostgreSQL.

Usage:
    from crosspost.db import get_session

    with get_session() as session:
        account = session.get(SocialAccount, account_id)
"""

from crosspost.db.engine import engine, get_session, init_db

__all__ = [
    "engine",
    "get_session",
    "init_db",
]
