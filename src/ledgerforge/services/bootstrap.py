"""Initialize ledgerforge services from a metadata directory.

Loads entity YAML, builds the tables, connects the store and constructs one
service per entity (chosen by the entity's kind), picking up hooks
registered with ``@hook``.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import MetaData

from ledgerforge.core.types import EntityKind
from ledgerforge.hooks import HookRegistry, ServiceHooks
from ledgerforge.metadata.loader import EntityModel, MetadataLoader
from ledgerforge.persistence import DatabaseConfig, SqlStore, create_store
from ledgerforge.persistence.schema import build_table
from ledgerforge.services.base import EntityService
from ledgerforge.services.context import ServiceContext
from ledgerforge.services.document import DocumentService
from ledgerforge.services.registry import InfoRegistryService, SumRegistryService

logger = logging.getLogger(__name__)


@dataclass
class LedgerServices:
    """Container for all initialized ledgerforge services."""

    metadata_loader: MetadataLoader
    store: SqlStore
    ctx: ServiceContext

    def service(self, name: str) -> EntityService:
        return self.ctx.service(name)


def build_service(
    ctx: ServiceContext,
    entity: EntityModel,
    hooks: ServiceHooks | None = None,
) -> EntityService:
    """Construct the service matching an entity's kind.

    Hooks registered for the entity are used unless ``hooks`` overrides
    them point by point.
    """
    merged = ServiceHooks.from_registry(entity.name).merge(hooks)

    if entity.kind is EntityKind.DOCUMENT:
        return DocumentService(
            ctx,
            entity.config,
            hooks=merged,
            get_registry_entries=HookRegistry.get(entity.name, "get_registry_entries"),
        )
    if entity.kind is EntityKind.INFO_REGISTRY:
        return InfoRegistryService(ctx, entity.config, hooks=merged)
    if entity.kind is EntityKind.SUM_REGISTRY:
        return SumRegistryService(
            ctx,
            entity.config,
            hooks=merged,
            after_post=HookRegistry.get(entity.name, "after_post"),
        )
    return EntityService(ctx, entity.config, hooks=merged)


def initialize_services(
    metadata_path: Path,
    db_config: DatabaseConfig | None = None,
    hooks: dict[str, ServiceHooks] | None = None,
) -> LedgerServices:
    """Load metadata, create tables and register one service per entity.

    Args:
        metadata_path: Directory holding ``entities/`` (and ``blocks/``)
        db_config: Database to use; defaults to DatabaseConfig.from_env()
        hooks: Explicit hooks per entity name, overriding registered ones
    """
    hooks = hooks or {}

    metadata_loader = MetadataLoader(metadata_path)
    metadata_loader.load_all()

    db_config = db_config or DatabaseConfig.from_env(metadata_path.parent)
    if db_config.is_sqlite and not db_config.is_memory:
        sqlite_path = db_config.url.replace("sqlite:///", "")
        if sqlite_path:
            Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    metadata = MetaData()
    entities = [metadata_loader.get_entity(n) for n in metadata_loader.list_entities()]
    for entity in entities:
        build_table(entity, metadata)

    store = create_store(db_config, metadata)
    store.create_all()

    ctx = ServiceContext(store)
    for entity in entities:
        ctx.register(entity.name, build_service(ctx, entity, hooks.get(entity.name)))
        logger.debug("Registered %s service for '%s'", entity.kind.value, entity.name)

    logger.info("Initialized %d entity service(s)", len(entities))
    return LedgerServices(metadata_loader=metadata_loader, store=store, ctx=ctx)
