"""Database connection and session management."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError

from . import config

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


class Database:
    """Process-scoped handle owning one engine and its session factory."""

    def __init__(self, url: str = None, echo: bool = None):
        self.url = url or config.DATABASE_URL
        echo = config.SQL_DEBUG if echo is None else echo

        if self.url.startswith("sqlite"):
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                # Every session must see the same in-memory database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs = {
                "pool_pre_ping": True,
                "pool_recycle": 3600,  # Recycle connections after 1 hour
                "pool_size": 10,
                "max_overflow": 20,
            }

        self.engine = create_engine(self.url, echo=echo, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._register_listeners()

    def _register_listeners(self):
        is_sqlite = self.url.startswith("sqlite")

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Set SQLite pragmas if using SQLite."""
            if is_sqlite:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        @event.listens_for(self.engine, "checkout")
        def receive_checkout(dbapi_connection, connection_record, connection_proxy):
            logger.debug("Connection checked out from pool")

        @event.listens_for(self.engine, "checkin")
        def receive_checkin(dbapi_connection, connection_record):
            logger.debug("Connection checked in to pool")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Context manager for a unit of work: commit on success, rollback on error."""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error: {e}")
            db.rollback()
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_tables(self):
        """Create all tables in the database."""
        # Import models so every table is registered on Base.metadata
        from . import models  # noqa: F401
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Error creating tables: {e}")
            raise

    def drop_tables(self):
        """Drop all tables in the database."""
        from . import models  # noqa: F401
        try:
            Base.metadata.drop_all(bind=self.engine)
            logger.info("Database tables dropped successfully")
        except SQLAlchemyError as e:
            logger.error(f"Error dropping tables: {e}")
            raise

    def check_connection(self) -> bool:
        """Check if database connection is working."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection failed: {e}")
            return False

    def dispose(self):
        """Release every pooled connection."""
        self.engine.dispose()
        logger.info("Database engine disposed")


_database: Optional[Database] = None


def init_database(url: str = None) -> Database:
    """Initialise the process-wide database handle once and return it."""
    global _database
    if _database is None:
        _database = Database(url)
        logger.info("Database handle initialised")
    return _database


def get_database() -> Database:
    """Return the process-wide database handle."""
    if _database is None:
        raise RuntimeError("Database is not initialised; call init_database() first")
    return _database


def shutdown_database():
    """Dispose the process-wide handle; a later init_database() starts fresh."""
    global _database
    if _database is not None:
        _database.dispose()
        _database = None
