from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()

# Created on first use so that importing models never needs a database
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        from storagehub.config import get_settings

        _engine = create_engine(
            get_settings().DATABASE_URL,
            future=True,
            echo=False,  # set True if you want to see SQL in terminal
        )
    return _engine


def get_sessionmaker() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
            future=True,
        )
    return _SessionLocal


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Import models and create tables if they don't exist.
    Alembic is the real migration tool, but this keeps local dev sane.
    """
    from storagehub import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def get_db() -> Iterator[Session]:
    """
    Request-scoped dependency that gives you a DB session and cleans it up after.
    """
    db: Session = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()
