"""Database session. SQLite for development/tests, PostgreSQL/MySQL in production."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lendbox.core.config import settings

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

if _is_sqlite:
    # NullPool: every session gets its own connection, so concurrent writers
    # queue on SQLite's file lock (busy timeout) instead of sharing state.
    from sqlalchemy.pool import NullPool

    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False, "timeout": 15},
        poolclass=NullPool,
    )
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autoflush=False, bind=engine)
