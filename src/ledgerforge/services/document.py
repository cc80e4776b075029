"""Documents: entities that post entries into registries.

A posted document owns exactly the registry rows tagged with its registrar
identity ``(entity_type_id, id)``. Every write regenerates them in full:
un-post from all configured registries, then insert fresh entries into the
registrar-depended ones, inside the same transaction as the document write.
"""

import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import and_

from ledgerforge.core.errors import AlreadyCancelledError, EntityNotFoundError
from ledgerforge.core.types import EntityId, Record, ServiceConfig, to_log_id
from ledgerforge.hooks import ServiceHooks
from ledgerforge.persistence.adapter import PersistenceDelegate
from ledgerforge.persistence.schema import REGISTRAR_ID_FIELD, REGISTRAR_TYPE_FIELD, ROW_FIELD
from ledgerforge.persistence.statements import Statement
from ledgerforge.services.base import EntityService
from ledgerforge.services.context import ServiceContext

logger = logging.getLogger(__name__)

RegistryEntries = dict[str, list[Record]]
GetRegistryEntries = Callable[[ServiceContext, Record], Any]


class Posting:
    """Builds post / un-post statements for one document entity.

    Args:
        ctx: Service context used to reach registry delegates
        config: The document's config (registries, entity_type_id)
        get_registry_entries: ``(ctx, record) -> {registry: [fragment, ...]}``,
            sync or async. Defaults to no entries.
    """

    def __init__(
        self,
        ctx: ServiceContext,
        config: ServiceConfig,
        get_registry_entries: GetRegistryEntries | None = None,
    ):
        self.ctx = ctx
        self.config = config
        self._get_registry_entries = get_registry_entries

    async def registry_entries(self, record: Record) -> RegistryEntries:
        """Raw fragments per registrar-depended registry (missing keys -> [])."""
        entries: RegistryEntries = {
            name: [] for name in self.config.registrar_depended_registries
        }
        if self._get_registry_entries is None:
            return entries

        produced = self._get_registry_entries(self.ctx, record)
        if inspect.isawaitable(produced):
            produced = await produced

        for name, fragments in (produced or {}).items():
            if name not in entries:
                logger.warning(
                    "Ignoring entries for '%s': not a registry of '%s'",
                    name,
                    self.config.name,
                )
                continue
            entries[name] = list(fragments or [])
        return entries

    def tag(self, fragments: list[Record], record_id: EntityId) -> list[Record]:
        """Stamp fragments with the registrar identity and a 1-based row."""
        return [
            {
                ROW_FIELD: index,
                **fragment,
                REGISTRAR_TYPE_FIELD: self.config.entity_type_id,
                REGISTRAR_ID_FIELD: to_log_id(record_id),
            }
            for index, fragment in enumerate(fragments, start=1)
        ]

    def _delegate(self, registry: str) -> PersistenceDelegate:
        return self.ctx.delegate_for(registry)

    def _prepare(self, registry: str, row: Record) -> Record:
        if self.ctx.has_service(registry):
            return self.ctx.service(registry).prepare_insert_row(row)
        return row

    def unpost_operations(self, record_id: EntityId) -> list[Statement]:
        statements = []
        for registry in self.config.registries:
            delegate = self._delegate(registry)
            table = delegate.table
            statements.append(
                delegate.delete_many(
                    and_(
                        table.c[REGISTRAR_TYPE_FIELD] == self.config.entity_type_id,
                        table.c[REGISTRAR_ID_FIELD] == to_log_id(record_id),
                    )
                )
            )
        return statements

    async def post_operations(self, record: Record) -> list[Statement]:
        """Un-post everything, then insert the record's current entries."""
        if not self.config.registrar_depended_registries:
            return []

        record_id = record[self.config.primary_key]
        statements = self.unpost_operations(record_id)
        entries = await self.registry_entries(record)
        for registry, fragments in entries.items():
            if not fragments:
                continue
            rows = [self._prepare(registry, row) for row in self.tag(fragments, record_id)]
            statements.append(self._delegate(registry).create_many(rows, skip_duplicates=False))

        logger.debug(
            "Posting %s %s: %d statement(s)",
            self.config.name,
            to_log_id(record_id),
            len(statements),
        )
        return statements


class DocumentService(EntityService):
    """Entity service whose writes keep registry entries in step.

    Posting runs inside the create (second phase), update and delete
    transactions. After a committed create or delete the document's entries
    are handed to each registry service's ``after_post``.
    """

    def __init__(
        self,
        ctx: ServiceContext,
        config: ServiceConfig,
        hooks: ServiceHooks | None = None,
        get_registry_entries: GetRegistryEntries | None = None,
        delegate: PersistenceDelegate | None = None,
    ):
        posting = Posting(ctx, config, get_registry_entries)
        super().__init__(ctx, config, hooks=hooks, posting=posting, delegate=delegate)

    async def post(self, record: Record) -> None:
        """Regenerate the registry entries of a stored record.

        Raises:
            DoNotAllowToChangeError: If allowed_to_change rejects the record
        """
        self._authorize(record)
        augmented = await self._augment(record, absent_only=True)
        self.ctx.store.transaction(await self.posting.post_operations(augmented))

    async def re_post(self, id: EntityId, by_user: bool = False) -> Record:
        """Replay posting for a stored document, e.g. after an out-of-band fix."""
        record = await self.get_required(id, by_user)
        await self.post(record)
        logger.debug("Re-posted %s %s", self.name, to_log_id(id))
        return record

    async def cancel(self, id: EntityId, by_user: bool = False) -> Record:
        record = await self.get(id, by_user)
        if record is None:
            raise EntityNotFoundError(self.name, {self.pk: id})
        if record.get("cancelled") and record.get("dateToCancelled"):
            raise AlreadyCancelledError(self.name, id)

        return await self.update(
            {
                **record,
                "cancelled": True,
                "dateToCancelled": datetime.now(timezone.utc),
            }
        )

    async def create(self, data: Record, by_user: bool = False) -> Record:
        created = await super().create(data, by_user)
        await self._after_post_handle(created)
        return created

    async def delete(self, data: Record | EntityId, by_user: bool = False) -> Record:
        deleted = await super().delete(data, by_user)
        await self._after_post_handle(deleted)
        return deleted

    async def _after_post_handle(self, record: Record) -> None:
        registries = self.config.registrar_depended_registries
        if not registries:
            return

        entries = await self.posting.registry_entries(record)
        for registry in registries:
            if not self.ctx.has_service(registry):
                continue
            service = self.ctx.service(registry)
            after_post = getattr(service, "after_post", None)
            if after_post is None:
                continue
            result = after_post(entries[registry])
            if inspect.isawaitable(result):
                await result
