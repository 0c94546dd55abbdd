"""Database setup and session utilities for SQLAlchemy.

This module centralizes the store client handed to the engines:
- create_db_engine: builds a pooled engine from settings. On PostgreSQL every connection
  gets a statement timeout (an expired call fails instead of hanging) and the IVFFLAT
  probe count (IVFFLAT_PROBES).
- Database: owns the engine and session factory. Connect once, reuse across calls,
  and close explicitly at shutdown.
- Database.init_db: ensures the pgvector extension exists and creates the tables,
  constraints and indexes (including the IVFFLAT index over document_chunks.embedding).
- Database.session_scope: context-managed transactional scope for one operation.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from insurance_rag.config import Settings, settings as default_settings
from insurance_rag.errors import StorageError

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(cfg: Optional[Settings] = None) -> Engine:
    """Create a pooled SQLAlchemy engine for the configured DATABASE_URL.

    Args:
        cfg: Settings to read from; defaults to the process-wide settings.

    Returns:
        Engine: Engine with pre-ping enabled and, for PostgreSQL, a statement timeout
        and ivfflat.probes set per connection.
    """
    cfg = cfg or default_settings
    kwargs = {"pool_pre_ping": True, "future": True}
    if cfg.DATABASE_URL.startswith("postgresql"):
        kwargs["pool_size"] = cfg.DB_POOL_SIZE
        kwargs["connect_args"] = {
            "options": f"-c statement_timeout={cfg.DB_TIMEOUT_MS} -c ivfflat.probes={cfg.IVFFLAT_PROBES}"
        }
    return create_engine(cfg.DATABASE_URL, **kwargs)


class Database:
    """Store client shared by the ingestion and retrieval engines.

    Holds one engine (connection pool) and a session factory. Each top-level
    operation opens its own session via ``session_scope`` so no state is shared
    across calls.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessionmaker = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True
        )

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "Database":
        return cls(create_db_engine(cfg))

    def init_db(self) -> None:
        """Initialize the vector extension, tables, constraints and indexes.

        This function is idempotent and safe to run multiple times.
        """
        # Import models after Base is defined
        from insurance_rag import models  # noqa: F401

        try:
            with self.engine.connect() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                conn.commit()
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to initialize database schema", exc) from exc
        logger.info("Database schema ready (%s)", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations.

        Yields:
            Session: A SQLAlchemy session bound to the engine.

        Notes:
            - Commits on successful exit.
            - Rolls back and re-raises on exception.
            - Always closes the session at the end.
        """
        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """Round-trip a trivial statement; False if the store is unreachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()
