"""Database configuration and store factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.pool import StaticPool

from ledgerforge.persistence.store import SqlStore


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes.
    """

    url: str
    echo: bool = False

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. LEDGERFORGE_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/ledgerforge.db
        """
        echo = os.environ.get("LEDGERFORGE_SQL_ECHO", "").lower() in ("1", "true", "yes")

        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url, echo=echo)

        db_path = os.environ.get("LEDGERFORGE_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}", echo=echo)

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'ledgerforge.db'}", echo=echo)

        return cls(url="sqlite:///ledgerforge.db", echo=echo)

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and self.url.rstrip("/") in ("sqlite:", "sqlite:///:memory:")

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy engine creation.

        Ensures postgresql:// URLs use the psycopg (v3) driver since
        the project depends on psycopg[binary], not psycopg2.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        return self.url


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_store(config: DatabaseConfig, metadata: MetaData | None = None) -> SqlStore:
    """Create a store based on the database URL scheme.

    Args:
        config: Database configuration with URL.
        metadata: MetaData holding (or about to hold) the entity tables.

    Returns:
        A SqlStore; tables are not created.

    Raises:
        ValueError: For unsupported URL schemes.
    """
    if config.is_sqlite:
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if config.is_memory:
            # One shared connection so every checkout sees the same database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(config.sqlalchemy_url, echo=config.echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return SqlStore(engine, metadata)

    if config.is_postgresql:
        engine = create_engine(config.sqlalchemy_url, echo=config.echo)
        return SqlStore(engine, metadata)

    raise ValueError(f"Unsupported database URL scheme: {config.url}")
