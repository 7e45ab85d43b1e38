"""
Database engine + session factory.

Always initializes; defaults to SQLite for local dev, Postgres in production.
The Postgres pool pre-pings connections and recycles them periodically, so a
warm worker transparently replaces connections dropped by the proxy.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadpipe.config import DATABASE_URL, DB_POOL_RECYCLE_SECONDS, WORKER_CONCURRENCY


class Base(DeclarativeBase):
    pass


# Some hosts inject postgres:// but SQLAlchemy 2.x requires postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

# SQLite needs different engine kwargs than Postgres
if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=DB_POOL_RECYCLE_SECONDS,
        pool_size=WORKER_CONCURRENCY,
        max_overflow=10,
    )

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


def check_database() -> bool:
    """Run a trivial query; True when the database answers."""
    session = get_session()
    try:
        session.execute(text('SELECT 1'))
        return True
    finally:
        session.close()
