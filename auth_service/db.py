"""
Database connection and setup
SQLite database with SQLAlchemy
"""
import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from auth_service.models import Base
from config.settings import settings

logger = logging.getLogger("db")


def make_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL
    SQLite connections are shared with worker threads, so the same-thread check is off
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, echo=False)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


DATABASE_URL = settings.database_url

engine = make_engine(DATABASE_URL)

# Session factory
SessionLocal = make_session_factory(engine)


def init_db(bind: Optional[Engine] = None):
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"Database initialized at: {bind.url}")
