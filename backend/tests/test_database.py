"""Test cases for database utilities."""

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from classroom_rls import database as database_module
from classroom_rls.database import Base, Database, init_database, get_database, shutdown_database
from classroom_rls.models import User, UserRole


class TestDatabaseHandle:
    """Test cases for the Database handle."""

    def test_session_commits_on_success(self, database):
        """Test that session() commits the unit of work."""
        with database.session() as db:
            db.add(User(email="a@test.com", full_name="A", role=UserRole.student))

        with database.session() as db:
            assert db.query(User).filter(User.email == "a@test.com").count() == 1

    def test_session_rolls_back_on_error(self, database):
        """Test that session() rolls back and re-raises on error."""
        with pytest.raises(RuntimeError):
            with database.session() as db:
                db.add(User(email="b@test.com", full_name="B", role=UserRole.student))
                db.flush()
                raise RuntimeError("Test error")

        with database.session() as db:
            assert db.query(User).filter(User.email == "b@test.com").count() == 0

    def test_session_propagates_storage_errors(self, database):
        """Test that SQLAlchemy errors reach the caller unchanged."""
        with pytest.raises(SQLAlchemyError):
            with database.session() as db:
                db.execute(text("SELECT * FROM no_such_table"))

    def test_create_tables_success(self, database):
        """Test successful table creation."""
        with patch.object(Base.metadata, "create_all") as mock_create_all:
            database.create_tables()
        mock_create_all.assert_called_once_with(bind=database.engine)

    def test_create_tables_error(self, database):
        """Test table creation error handling."""
        with patch.object(Base.metadata, "create_all", side_effect=SQLAlchemyError("Connection failed")):
            with pytest.raises(SQLAlchemyError):
                database.create_tables()

    def test_drop_tables_error(self, database):
        """Test table dropping error handling."""
        with patch.object(Base.metadata, "drop_all", side_effect=SQLAlchemyError("Connection failed")):
            with pytest.raises(SQLAlchemyError):
                database.drop_tables()

    def test_check_connection_success(self, database):
        """Test successful database connection check."""
        assert database.check_connection() is True

    def test_check_connection_failure(self, database):
        """Test database connection check failure."""
        with patch.object(database, "engine") as mock_engine:
            mock_engine.connect.side_effect = SQLAlchemyError("Connection failed")
            assert database.check_connection() is False

    def test_sqlite_foreign_keys_enforced(self, database):
        """Test that the connect listener turns SQLite foreign keys on."""
        with database.engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1


class TestDatabaseConfiguration:
    """Test cases for engine configuration."""

    @patch("classroom_rls.database.create_engine")
    def test_server_engine_pooling(self, mock_create_engine):
        """Test that non-SQLite URLs get a recycled connection pool."""
        mock_create_engine.return_value = MagicMock()
        with patch("classroom_rls.database.event.listens_for", return_value=lambda fn: fn):
            Database("postgresql://user:pw@localhost/classrooms", echo=False)

        _, kwargs = mock_create_engine.call_args
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["pool_recycle"] == 3600
        assert kwargs["pool_size"] == 10

    def test_memory_engine_shares_one_connection(self, database):
        """Test that in-memory SQLite uses a static pool."""
        assert database.engine.pool.__class__.__name__ == "StaticPool"


class TestProcessHandle:
    """Test cases for the process-scoped handle lifecycle."""

    @pytest.fixture(autouse=True)
    def reset_handle(self):
        shutdown_database()
        yield
        shutdown_database()

    def test_get_before_init_raises(self):
        with pytest.raises(RuntimeError):
            get_database()

    def test_init_is_idempotent(self):
        first = init_database("sqlite://")
        second = init_database("sqlite://")
        assert first is second
        assert get_database() is first

    def test_shutdown_disposes_and_clears(self):
        handle = init_database("sqlite://")
        with patch.object(handle, "dispose") as mock_dispose:
            shutdown_database()
        mock_dispose.assert_called_once()
        assert database_module._database is None
