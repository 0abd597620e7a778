from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from app.core.config import settings
from app.core.errors import StorageUnavailable

Base = declarative_base()

engine = None
SessionLocal = None

if settings.POSTGRES_DSN:
    engine = create_engine(settings.POSTGRES_DSN, future=True, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    if not engine or not SessionLocal:
        raise HTTPException(503, "DB not configured (POSTGRES_DSN missing)")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_errors(db: Session, action: str):
    """Roll back and re-raise any SQLAlchemyError as StorageUnavailable."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Database error {action}: {e}") from e
