"""Database connection and session management"""

from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from orgtree.config import settings


def _engine_options(database_url: str) -> dict:
    """Engine keyword arguments for the configured backend"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
    }


engine = create_engine(
    settings.database_url,
    echo=settings.environment == "development",
    **_engine_options(settings.database_url),
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Base class for all models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    Services own their transactions; the session is closed when the request ends.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            return db.query(Item).all()
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables for the registered models"""
    import orgtree.models  # noqa: F401 - registers the mappers on Base.metadata

    Base.metadata.create_all(bind=engine)
