"""Generic CRUD service for one entity.

Every write follows the same pipeline:

1. Strip forbidden fields (by_user only), merge over the stored record
   (update/upsert) and apply defaults
2. Run validate + the before_* hook
3. Derive the search column and check allowed_to_change
4. Commit the primary write, hook statements and posting statements in one
   store transaction
5. Run the after_* hook on the committed record
"""

import logging
import uuid
from typing import Any, Protocol

from ledgerforge.core.errors import (
    DoNotAllowToChangeError,
    EntityNotFoundError,
    MissingRequiredFieldsError,
)
from ledgerforge.core.types import (
    EntityId,
    IdStrategy,
    Operation,
    Record,
    ServiceConfig,
    omit,
    to_log_id,
)
from ledgerforge.filters import FilterCompiler, ListParams
from ledgerforge.hooks import HookPipeline, ServiceHooks
from ledgerforge.persistence.adapter import PersistenceDelegate
from ledgerforge.persistence.statements import Statement
from ledgerforge.services.context import ServiceContext
from ledgerforge.services.search import build_search_string

logger = logging.getLogger(__name__)


class PostingComponent(Protocol):
    """Statements that keep dependent registry rows in step with a record."""

    async def post_operations(self, record: Record) -> list[Statement]: ...

    def unpost_operations(self, record_id: EntityId) -> list[Statement]: ...


class EntityService:
    """CRUD over one entity, parameterized by config, hooks and components.

    Args:
        ctx: Shared service context (store + service locator)
        config: Entity capabilities (id strategy, search, forbidden fields...)
        hooks: Optional hook table; missing hooks are identity / no-op
        posting: Optional posting component (documents)
        delegate: Table delegate; defaults to the store's delegate for
            ``config.name``
    """

    def __init__(
        self,
        ctx: ServiceContext,
        config: ServiceConfig,
        hooks: ServiceHooks | None = None,
        posting: PostingComponent | None = None,
        delegate: PersistenceDelegate | None = None,
    ):
        self.ctx = ctx
        self.config = config
        self.delegate = delegate or ctx.store.delegate(config.name, config.primary_key)
        self.hooks = HookPipeline(config.name, hooks)
        self.posting = posting
        self.compiler = FilterCompiler(
            self.delegate.table,
            primary_key=config.primary_key,
            search_column=config.search.column if config.search else None,
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def pk(self) -> str:
        return self.config.primary_key

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _list_params(self, params: dict[str, Any] | None, by_user: bool) -> ListParams:
        request = dict(params or {})
        if by_user:
            request = await self.hooks.change_list_filter(self.ctx, request)
        return ListParams.from_dict(request)

    async def all(self, params: dict[str, Any] | None = None, by_user: bool = False) -> list[Record]:
        query = self.compiler.compile_params(await self._list_params(params, by_user))
        return self.delegate.find_many(
            where=query.where,
            order_by=query.order_by,
            limit=query.limit,
            offset=query.offset,
        )

    async def find_one(
        self, params: dict[str, Any] | None = None, by_user: bool = False
    ) -> Record | None:
        query = self.compiler.compile_params(await self._list_params(params, by_user))
        return self.delegate.find_first(where=query.where, order_by=query.order_by)

    async def find_one_required(
        self, params: dict[str, Any] | None = None, by_user: bool = False
    ) -> Record:
        found = await self.find_one(params, by_user)
        if found is None:
            raise EntityNotFoundError(self.name, (params or {}).get("filter"))
        return found

    async def get(self, id: EntityId, by_user: bool = False) -> Record | None:
        return await self.find_one({"filter": {self.pk: id}}, by_user)

    async def get_required(self, id: EntityId, by_user: bool = False) -> Record:
        found = await self.get(id, by_user)
        if found is None:
            raise EntityNotFoundError(self.name, {self.pk: id})
        return found

    async def count(self, params: dict[str, Any] | None = None, by_user: bool = False) -> int:
        request = await self._list_params(params, by_user)
        return self.delegate.count(where=self.compiler.compile_filter(request.filter))

    async def meta(self, params: dict[str, Any] | None = None, by_user: bool = False) -> dict[str, int]:
        return {"count": await self.count(params, by_user)}

    # ------------------------------------------------------------------
    # Payload preparation
    # ------------------------------------------------------------------

    def _clear(self, data: Record, by_user: bool) -> Record:
        if not by_user:
            return dict(data)
        return omit(data, self.config.forbidden_for_user_fields)

    async def _augment(
        self, data: Record, generate_id: bool = False, absent_only: bool = False
    ) -> Record:
        """Fill configured defaults where values are missing, then run the hook.

        With absent_only an explicit None is kept, so a stored field can be
        cleared by an update.
        """
        augmented = dict(data)
        for key, value in self.config.default_values().items():
            if key not in augmented or (not absent_only and augmented[key] is None):
                augmented[key] = value
        if (
            generate_id
            and self.config.id_strategy is IdStrategy.UUID
            and augmented.get(self.pk) is None
        ):
            augmented[self.pk] = uuid.uuid4().hex
        return await self.hooks.augment_by_default(self.ctx, augmented)

    def _with_search(self, data: Record) -> Record:
        if not self.config.with_search:
            return data
        return {**data, self.config.search.column: build_search_string(data, self.config.search)}

    def _authorize(self, record: Record) -> None:
        if not self.hooks.allowed_to_change(record):
            raise DoNotAllowToChangeError(self.name)

    def _check_required(self, data: Record) -> None:
        missing = [f for f in self.config.required_db_not_user_fields if data.get(f) is None]
        if missing:
            raise MissingRequiredFieldsError(
                f"Required fields missing for {self.name}: {', '.join(missing)}", missing
            )

    def prepare_insert_row(self, data: Record) -> Record:
        """Give a raw row its generated id and search value.

        Used for rows inserted without the full create pipeline (batch
        inserts, posted registry entries).
        """
        row = dict(data)
        if self.config.id_strategy is IdStrategy.UUID and row.get(self.pk) is None:
            row[self.pk] = uuid.uuid4().hex
        return self._with_search(row)

    async def _post_operations(self, record: Record) -> list[Statement]:
        if self.posting is None:
            return []
        return await self.posting.post_operations(record)

    def _unpost_operations(self, record_id: EntityId) -> list[Statement]:
        if self.posting is None:
            return []
        return self.posting.unpost_operations(record_id)

    def _search_patch(self, record: Record) -> Statement | None:
        """Search refresh for store-assigned ids, unknown before the insert."""
        if self.config.search is None or self.config.id_strategy is not IdStrategy.AUTOINCREMENT:
            return None
        value = build_search_string(record, self.config.search)
        return self.delegate.update(record[self.pk], {self.config.search.column: value})

    async def _finish_insert(self, created: Record) -> Record:
        """Second transaction after an insert: search patch plus posting."""
        statements: list[Statement] = []
        patch = self._search_patch(created)
        if patch is not None:
            statements.append(patch)
        statements.extend(await self._post_operations(created))
        if not statements:
            return created

        results = self.ctx.store.transaction(statements)
        return results[0] if patch is not None else created

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, data: Record, by_user: bool = False) -> Record:
        cleared = self._clear(data, by_user)
        augmented = await self._augment(cleared, generate_id=True)
        processed = await self.hooks.before_create(self.ctx, augmented)
        self._check_required(processed)
        create_data = self._with_search(processed)
        self._authorize(create_data)

        operations = [
            self.delegate.create(create_data),
            *await self.hooks.additional_operations(Operation.CREATE, self.ctx, create_data),
        ]
        created = self.ctx.store.transaction(operations)[0]
        logger.debug("Created %s %s", self.name, to_log_id(created[self.pk]))

        created = await self._finish_insert(created)
        await self.hooks.after(Operation.CREATE, self.ctx, created)
        return created

    async def create_many(self, entries: list[Record], by_user: bool = False) -> int:
        """Insert many rows in one transaction, skipping duplicate keys.

        Returns:
            Number of rows actually inserted
        """
        if not entries:
            return 0

        prepared: list[Record] = []
        for entry in entries:
            augmented = await self._augment(self._clear(entry, by_user), generate_id=True)
            await self.hooks.validate(self.ctx, augmented)
            prepared.append(augmented)

        for row in prepared:
            self._authorize(row)

        additional: list[Statement] = []
        for row in prepared:
            additional.extend(
                await self.hooks.additional_operations(Operation.CREATE, self.ctx, row)
            )

        rows = [self.prepare_insert_row(row) for row in prepared]
        results = self.ctx.store.transaction(
            [self.delegate.create_many(rows, skip_duplicates=True), *additional]
        )
        logger.debug("Inserted %d of %d %s rows", results[0], len(rows), self.name)
        return results[0]

    async def update(self, data: Record, by_user: bool = False) -> Record:
        record_id = data.get(self.pk)
        if record_id is None:
            raise EntityNotFoundError(self.name, {self.pk: None})
        current = await self.get_required(record_id)

        merged = {**current, **self._clear(data, by_user)}
        augmented = await self._augment(merged, absent_only=True)
        self._authorize(augmented)

        processed = await self.hooks.before_update(self.ctx, augmented)
        self._check_required(processed)
        update_data = self._with_search({**processed, self.pk: current[self.pk]})

        operations = [
            self.delegate.update(current[self.pk], omit(update_data, (self.pk,))),
            *await self.hooks.additional_operations(Operation.UPDATE, self.ctx, update_data),
            *await self._post_operations(update_data),
        ]
        updated = self.ctx.store.transaction(operations)[0]
        logger.debug("Updated %s %s", self.name, to_log_id(current[self.pk]))

        await self.hooks.after(Operation.UPDATE, self.ctx, updated)
        return updated

    async def upsert(self, data: Record, by_user: bool = False) -> Record:
        record_id = data.get(self.pk)
        current = await self.get(record_id) if record_id is not None else None

        merged = {**(current or {}), **self._clear(data, by_user)}
        augmented = await self._augment(
            merged, generate_id=current is None, absent_only=current is not None
        )
        self._authorize(augmented)

        create_data, update_data = await self.hooks.before_upsert(
            self.ctx, dict(augmented), dict(augmented)
        )
        self._check_required(create_data if current is None else update_data)
        create_data = self._with_search(create_data)
        update_data = self._with_search(update_data)
        key = create_data.get(self.pk) if current is None else current[self.pk]

        operations: list[Statement] = [
            self.delegate.upsert(key, create_data, omit(update_data, (self.pk,)))
        ]
        if key is not None:
            operations.extend(
                await self._post_operations(
                    {**(create_data if current is None else update_data), self.pk: key}
                )
            )
        result = self.ctx.store.transaction(operations)[0]
        logger.debug(
            "Upserted %s %s (%s)",
            self.name,
            to_log_id(result[self.pk]),
            "create" if current is None else "update",
        )

        if key is None:
            # Store-assigned id: finish like a create
            result = await self._finish_insert(result)
        return result

    async def delete(self, data: Record | EntityId, by_user: bool = False) -> Record:
        params = data if isinstance(data, dict) else {self.pk: data}
        await self.hooks.before_delete(self.ctx, params)

        record_id = params.get(self.pk)
        entity = await self.get(record_id, by_user) if record_id is not None else None
        if entity is None:
            raise EntityNotFoundError(self.name, {self.pk: record_id})
        self._authorize(entity)

        operations = [
            self.delegate.delete(entity[self.pk]),
            *await self.hooks.additional_operations(Operation.DELETE, self.ctx, params),
            *self._unpost_operations(entity[self.pk]),
        ]
        self.ctx.store.transaction(operations)
        logger.debug("Deleted %s %s", self.name, to_log_id(entity[self.pk]))

        await self.hooks.after(Operation.DELETE, self.ctx, entity)
        return entity
