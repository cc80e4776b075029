"""Persistence layer - store, delegates and write statements."""

from ledgerforge.persistence.adapter import PersistenceDelegate, Store
from ledgerforge.persistence.config import DatabaseConfig, create_store
from ledgerforge.persistence.statements import RawStatement, Statement
from ledgerforge.persistence.store import SqlStore, TableDelegate

__all__ = [
    "DatabaseConfig",
    "PersistenceDelegate",
    "RawStatement",
    "SqlStore",
    "Statement",
    "Store",
    "TableDelegate",
    "create_store",
]
