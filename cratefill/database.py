"""
Database schema and connection management.

Uses SQLite with SQLAlchemy as the registry store holding crates and their
published versions.
"""

from datetime import datetime, timezone
from pathlib import Path
from sqlalchemy import (
    create_engine,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def utc_now() -> datetime:
    """Current time as naive UTC, the way timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Crate(Base):
    """Crate model."""

    __tablename__ = "crates"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class Version(Base):
    """Published version of a crate. Most metadata columns may be unset."""

    __tablename__ = "versions"

    id = Column(Integer, primary_key=True)
    crate_id = Column(Integer, ForeignKey("crates.id"), nullable=False)
    num = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    edition = Column(String)
    crate_size = Column(Integer)
    features = Column(JSON, nullable=False, default=dict)
    links = Column(String)

    description = Column(String)
    homepage = Column(String)
    documentation = Column(String)
    repository = Column(String)
    categories = Column(JSON(none_as_null=True))
    keywords = Column(JSON(none_as_null=True))

    has_lib = Column(Boolean)
    bin_names = Column(JSON(none_as_null=True))


def get_engine(db_path: Path) -> Engine:
    """
    Create an engine for the SQLite database file.

    Args:
        db_path: Path to SQLite database file
    """
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = get_engine(db_path)
    Session = sessionmaker(bind=engine)
    return Session()
