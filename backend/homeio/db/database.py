from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from ..core.config import settings
from ..core.exceptions import StoreError


def make_engine(database_url: str):
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if "sqlite" in database_url else {}
    )


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Session:
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_errors(action: str):
    """Re-raise SQLAlchemy failures as StoreError"""
    try:
        yield
    except SQLAlchemyError as e:
        raise StoreError(f"Database error while {action}: {e}") from e


def create_tables(bind=None):
    """Create all tables"""
    # Register models on Base.metadata
    from ..models import device, command_queue  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
