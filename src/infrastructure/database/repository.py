"""Generic collection manager for database records.

``CollectionManager`` provides CRUD, counting, upsert and relationship
preloading for any model deriving from ``BaseModel``, and announces every
single-record mutation through the ``ChangeNotifier``.

Every operation runs on one of two store handles:
- **Ambient**: ``tx`` omitted; the manager opens a session from its factory,
  commits on success and rolls back on error
- **Transaction**: ``tx`` given (or a ``*_with_tx`` alias used); the manager
  only flushes and leaves begin/commit/rollback to the caller

Store failures surface as ``PersistenceError`` carrying the entity and
operation, with the SQLAlchemy error preserved as the cause.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Final

import pydantic
from loguru import logger
from sqlalchemy import func, inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from src.core.exceptions import (
    IdentityError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from src.infrastructure.database.base import BaseModel
from src.infrastructure.database.filters import filter_conditions, non_zero_fields
from src.infrastructure.database.identity import (
    get_identity,
    is_nil,
    set_identity,
)
from src.infrastructure.database.preload import merge_preloads, preload_options

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from starlette.requests import Request

    from src.infrastructure.messaging.notifier import ChangeNotifier, TopicBuilder

# Maintained by the store; never written from a caller's record
TIMESTAMP_COLUMNS: Final = ("created_at", "updated_at")


class CollectionManager[TData: BaseModel, TResponse, TRequest: pydantic.BaseModel]:
    """Data access for one record type.

    Args:
        session_factory: Factory for ambient sessions. Must be created with
            ``expire_on_commit=False`` so returned records stay readable.
        model_class: The mapped record class.
        resource: Maps a record to its response shape.
        request_model: Pydantic model inbound payloads are bound to.
        created: Topics announced after a create.
        updated: Topics announced after an update.
        deleted: Topics announced after a delete.
        notifier: Receives change events; ``None`` disables notifications.
        preloads: Relationship names attached to every read and reload.

    Example:
        feedback = CollectionManager(
            get_session_factory(),
            Feedback,
            resource=to_feedback_response,
            request_model=FeedbackRequest,
            created=topic_builder("feedback", "create"),
            updated=topic_builder("feedback", "update"),
            deleted=topic_builder("feedback", "delete"),
            notifier=get_notifier(),
            preloads=["media"],
        )
        record = await feedback.create(
            Feedback(email="a@b.co", description="Great app")
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model_class: type[TData],
        *,
        resource: Callable[[TData], TResponse | None],
        request_model: type[TRequest],
        created: TopicBuilder,
        updated: TopicBuilder,
        deleted: TopicBuilder,
        notifier: ChangeNotifier | None = None,
        preloads: Sequence[str] = (),
    ) -> None:
        self.session_factory = session_factory
        self.model_class = model_class
        self.resource = resource
        self.request_model = request_model
        self.created = created
        self.updated = updated
        self.deleted = deleted
        self.notifier = notifier
        self.preloads = list(preloads)
        self.entity = model_class.__name__
        logger.debug("Initialized collection manager for {}", self.entity)

    # --- Internals ---

    @asynccontextmanager
    async def _session(
        self, tx: AsyncSession | None, operation: str
    ) -> AsyncGenerator[AsyncSession]:
        if tx is not None:
            yield tx
            return

        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            try:
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise self._store_error(operation, e) from e

    def _store_error(self, operation: str, error: SQLAlchemyError) -> PersistenceError:
        return PersistenceError(
            f"failed to {operation} {self.entity}",
            context={"entity": self.entity, "operation": operation},
            cause=error,
        )

    def _not_found(self, operation: str, **context: object) -> NotFoundError:
        return NotFoundError(
            f"{self.entity} not found",
            context={"entity": self.entity, "operation": operation, **context},
        )

    def _select(self, preloads: Iterable[str]) -> Select[tuple[TData]]:
        names = merge_preloads(self.preloads, preloads)
        stmt = select(self.model_class)
        if names:
            stmt = stmt.options(*preload_options(self.model_class, names))
        return stmt

    async def _reload(
        self,
        session: AsyncSession,
        identity: uuid.UUID,
        preloads: Iterable[str],
    ) -> TData | None:
        """Load one row, overwriting any instance already in the session."""
        stmt = (
            self._select(preloads)
            .where(self.model_class.id == identity)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _copy_state(source: TData, target: TData) -> None:
        """Copy every loaded attribute of ``source`` into ``target``."""
        if source is target:
            return
        loaded = inspect(source).dict
        for attr in inspect(source).mapper.attrs:
            if attr.key in loaded:
                set_committed_value(target, attr.key, loaded[attr.key])

    @staticmethod
    def _fill_unset_columns(record: TData) -> None:
        """Set every column the caller never assigned to its default.

        Scalar defaults are used, otherwise ``None``. Expired attributes of a
        loaded record are not unset. The identity, the timestamps and columns
        whose default is generated (callable or server-side) keep their stored
        values.
        """
        state = inspect(record)
        for attr in state.mapper.column_attrs:
            if (
                attr.key in state.dict
                or attr.key in state.expired_attributes
                or attr.key in TIMESTAMP_COLUMNS
            ):
                continue
            column = attr.columns[0]
            if column.primary_key or (
                column.default is None and column.server_default is not None
            ):
                continue
            default = column.default
            if default is None:
                setattr(record, attr.key, None)
            elif default.is_scalar:
                setattr(record, attr.key, default.arg)

    def _assign_identity(self, record: TData) -> uuid.UUID:
        identity = get_identity(record)
        if is_nil(identity):
            identity = uuid.uuid4()
            set_identity(record, identity)
        return identity

    def _require_identity(self, record: TData, operation: str) -> uuid.UUID:
        identity = get_identity(record)
        if is_nil(identity):
            raise IdentityError(
                f"cannot {operation} {self.entity} without an identity",
                context={"entity": self.entity, "operation": operation},
            )
        return identity

    def _notify(self, topics_for: TopicBuilder, record: TData) -> None:
        if self.notifier is None:
            return
        try:
            topics = topics_for(record)
            payload = self.to_model(record)
        except Exception:  # noqa: BLE001 - the mutation is already applied
            logger.opt(exception=True).error(
                "Failed to build change event for {}", self.entity
            )
            return
        self.notifier.publish(topics, payload)

    # --- Response mapping ---

    def to_model(self, record: TData | None) -> TResponse | None:
        """Map a record to its response shape; ``None`` maps to ``None``."""
        if record is None:
            return None
        return self.resource(record)

    def to_models(self, records: Iterable[TData | None] | None) -> list[TResponse]:
        """Map records to responses, skipping ``None`` entries and results."""
        if records is None:
            return []
        models: list[TResponse] = []
        for record in records:
            model = self.to_model(record)
            if model is not None:
                models.append(model)
        return models

    # --- Validation ---

    def validate_payload(self, data: Mapping[str, Any] | bytes | str) -> TRequest:
        """Bind an inbound payload to the request model.

        Args:
            data: A decoded mapping, or a raw JSON document.

        Returns:
            TRequest: The validated request.

        Raises:
            ValidationError: If the JSON is malformed or a declared
                constraint is violated. ``context["validation_errors"]`` maps
                each field path to its messages.
        """
        try:
            if isinstance(data, bytes | str):
                return self.request_model.model_validate_json(data)
            return self.request_model.model_validate(data)
        except pydantic.ValidationError as e:
            errors: dict[str, list[str]] = {}
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "body"
                errors.setdefault(field, []).append(error["msg"])
            logger.debug(
                "Rejected {} payload - fields: {}", self.entity, list(errors)
            )
            raise ValidationError(
                f"invalid {self.entity} payload",
                context={"validation_errors": errors},
                cause=e,
            ) from e

    async def validate(self, request: Request) -> TRequest:
        """Read the request body and bind it to the request model."""
        body = await request.body()
        return self.validate_payload(body)

    # --- Reads ---

    async def find(
        self,
        filter_record: TData | None,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> list[TData]:
        """Return records matching every non-zero field of ``filter_record``.

        Results are ordered by ``updated_at`` descending. A ``None`` or empty
        filter matches every record.
        """
        conditions = filter_conditions(self.model_class, filter_record)
        logger.debug("Finding {} with {} conditions", self.entity, len(conditions))

        stmt = self._select(preloads)
        if conditions:
            stmt = stmt.where(*conditions)
        stmt = stmt.order_by(self.model_class.updated_at.desc())

        try:
            async with self._session(tx, "find") as session:
                result = await session.execute(stmt)
                records = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._store_error("find", e) from e

        logger.debug("Found {} {} records", len(records), self.entity)
        return records

    async def find_one(
        self,
        filter_record: TData | None,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Return the most recently created record matching the filter.

        Raises:
            NotFoundError: If nothing matches.
        """
        conditions = filter_conditions(self.model_class, filter_record)
        stmt = self._select(preloads)
        if conditions:
            stmt = stmt.where(*conditions)
        stmt = stmt.order_by(self.model_class.created_at.desc()).limit(1)

        try:
            async with self._session(tx, "find one") as session:
                result = await session.execute(stmt)
                record = result.scalars().first()
        except SQLAlchemyError as e:
            raise self._store_error("find one", e) from e

        if record is None:
            raise self._not_found("find_one")
        return record

    async def get_by_id(
        self,
        identity: uuid.UUID,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Return the record with ``identity``.

        Raises:
            NotFoundError: If no record has that identity.
        """
        logger.debug("Fetching {} by ID: {}", self.entity, identity)
        stmt = self._select(preloads).where(self.model_class.id == identity)

        try:
            async with self._session(tx, "get") as session:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._store_error("get", e) from e

        if record is None:
            raise self._not_found("get_by_id", identity=str(identity))
        return record

    async def list(
        self, *preloads: str, tx: AsyncSession | None = None
    ) -> list[TData]:
        """Return every record, most recently updated first."""
        return await self.find(None, *preloads, tx=tx)

    async def count(
        self, filter_record: TData | None = None, *, tx: AsyncSession | None = None
    ) -> int:
        """Count records matching every non-zero field of ``filter_record``."""
        conditions = filter_conditions(self.model_class, filter_record)
        stmt = select(func.count()).select_from(self.model_class)
        if conditions:
            stmt = stmt.where(*conditions)

        try:
            async with self._session(tx, "count") as session:
                result = await session.execute(stmt)
                count_value = result.scalar_one()
        except SQLAlchemyError as e:
            raise self._store_error("count", e) from e

        logger.debug("Counted {} {} records", count_value, self.entity)
        return count_value

    async def count_with_tx(
        self, tx: AsyncSession, filter_record: TData | None = None
    ) -> int:
        """Count matching records inside ``tx``."""
        return await self.count(filter_record, tx=tx)

    async def find_raw(
        self,
        filter_record: TData | None,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> list[TResponse]:
        """``find`` mapped to responses."""
        return self.to_models(await self.find(filter_record, *preloads, tx=tx))

    async def find_one_raw(
        self,
        filter_record: TData | None,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TResponse | None:
        """``find_one`` mapped to a response.

        Raises:
            NotFoundError: If nothing matches."""
        return self.to_model(await self.find_one(filter_record, *preloads, tx=tx))

    async def get_by_id_raw(
        self,
        identity: uuid.UUID,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TResponse | None:
        """``get_by_id`` mapped to a response.

        Raises:
            NotFoundError: If no record has ``identity``."""
        return self.to_model(await self.get_by_id(identity, *preloads, tx=tx))

    async def list_raw(
        self, *preloads: str, tx: AsyncSession | None = None
    ) -> list[TResponse]:
        """Every record mapped to responses, most recently updated first."""
        return self.to_models(await self.find(None, *preloads, tx=tx))

    # --- Creation ---

    async def create(
        self,
        record: TData,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Insert ``record`` and reload it in place.

        A nil identity is replaced by a fresh UUID4 first. After the insert the
        row is read back with the composed preloads, so server-assigned values
        and related records are present on the caller's instance.
        """
        identity = self._assign_identity(record)
        logger.debug("Creating {} with ID: {}", self.entity, identity)

        try:
            async with self._session(tx, "create") as session:
                session.add(record)
                await session.flush()
                if await self._reload(session, identity, preloads) is None:
                    raise PersistenceError(
                        f"{self.entity} missing after create",
                        context={"entity": self.entity, "operation": "create"},
                    )
        except SQLAlchemyError as e:
            raise self._store_error("create", e) from e

        logger.info("Created {} with ID: {}", self.entity, identity)
        self._notify(self.created, record)
        return record

    async def create_with_tx(
        self, tx: AsyncSession, record: TData, *preloads: str
    ) -> TData:
        """``create`` inside the caller's transaction."""
        return await self.create(record, *preloads, tx=tx)

    async def create_many(
        self,
        records: Sequence[TData],
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> Sequence[TData]:
        """Insert a batch in one flush and reload it with a single query.

        No change events are published for batch creation.

        Raises:
            PersistenceError: If a reloaded row is missing or the store fails.
        """
        if not records:
            return records

        identities = [self._assign_identity(record) for record in records]
        logger.debug("Creating {} {} records", len(records), self.entity)

        try:
            async with self._session(tx, "create many") as session:
                session.add_all(records)
                await session.flush()
                stmt = (
                    self._select(preloads)
                    .where(self.model_class.id.in_(identities))
                    .execution_options(populate_existing=True)
                )
                result = await session.execute(stmt)
                reloaded = {get_identity(row): row for row in result.scalars().all()}
                missing = [str(i) for i in identities if i not in reloaded]
                if missing:
                    raise PersistenceError(
                        f"{self.entity} records missing after create",
                        context={
                            "entity": self.entity,
                            "operation": "create_many",
                            "missing": missing,
                        },
                    )
        except SQLAlchemyError as e:
            raise self._store_error("create many", e) from e

        for record, identity in zip(records, identities, strict=True):
            self._copy_state(reloaded[identity], record)

        logger.info("Created {} {} records", len(records), self.entity)
        return records

    async def create_many_with_tx(
        self, tx: AsyncSession, records: Sequence[TData], *preloads: str
    ) -> Sequence[TData]:
        """``create_many`` inside the caller's transaction."""
        return await self.create_many(records, *preloads, tx=tx)

    # --- Updates ---

    async def update(
        self,
        record: TData,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Save every field of ``record`` and reload it in place.

        Columns the caller left unset are written with their defaults, so the
        stored row is replaced rather than patched. The record is merged into
        the session by identity; a row that no longer exists is inserted
        again.

        Raises:
            IdentityError: If the record has no identity.
        """
        identity = self._require_identity(record, "update")
        logger.debug("Updating {} with ID: {}", self.entity, identity)
        self._fill_unset_columns(record)

        try:
            async with self._session(tx, "update") as session:
                await session.merge(record)
                await session.flush()
                reloaded = await self._reload(session, identity, preloads)
        except SQLAlchemyError as e:
            raise self._store_error("update", e) from e

        if reloaded is None:
            raise self._not_found("update", identity=str(identity))
        self._copy_state(reloaded, record)

        logger.info("Updated {} with ID: {}", self.entity, identity)
        self._notify(self.updated, record)
        return record

    async def update_with_tx(
        self, tx: AsyncSession, record: TData, *preloads: str
    ) -> TData:
        """``update`` inside the caller's transaction."""
        return await self.update(record, *preloads, tx=tx)

    async def update_by_id(
        self,
        identity: uuid.UUID,
        record: TData,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Assign ``identity`` to ``record``, then save it as ``update`` does."""
        set_identity(record, identity)
        return await self.update(record, *preloads, tx=tx)

    async def update_by_id_with_tx(
        self,
        tx: AsyncSession,
        identity: uuid.UUID,
        record: TData,
        *preloads: str,
    ) -> TData:
        """``update_by_id`` inside the caller's transaction."""
        return await self.update_by_id(identity, record, *preloads, tx=tx)

    async def update_fields(
        self,
        identity: uuid.UUID,
        fields_record: TData,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Patch only the non-zero fields of ``fields_record``.

        Zero fields are left untouched in the store. Timestamps are never
        copied from ``fields_record``; ``updated_at`` is refreshed by the store.
        Afterwards the full row is loaded into ``fields_record``.

        Raises:
            NotFoundError: If no record has ``identity``.
        """
        values = non_zero_fields(fields_record)
        for key in ("id", *TIMESTAMP_COLUMNS):
            values.pop(key, None)
        logger.debug(
            "Patching {} ID {} - fields: {}", self.entity, identity, list(values)
        )

        try:
            async with self._session(tx, "update fields") as session:
                if values:
                    stmt = (
                        update(self.model_class)
                        .where(self.model_class.id == identity)
                        .values(**values)
                    )
                    await session.execute(stmt)
                reloaded = await self._reload(session, identity, preloads)
                if reloaded is None:
                    raise self._not_found("update_fields", identity=str(identity))
        except SQLAlchemyError as e:
            raise self._store_error("update fields", e) from e

        self._copy_state(reloaded, fields_record)

        logger.info(
            "Patched {} ID {} - fields: {}", self.entity, identity, list(values)
        )
        self._notify(self.updated, fields_record)
        return fields_record

    async def update_fields_with_tx(
        self,
        tx: AsyncSession,
        identity: uuid.UUID,
        fields_record: TData,
        *preloads: str,
    ) -> TData:
        """``update_fields`` inside the caller's transaction."""
        return await self.update_fields(identity, fields_record, *preloads, tx=tx)

    async def update_many(
        self,
        records: Sequence[TData],
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> Sequence[TData]:
        """Update each record in turn, stopping at the first failure."""
        for record in records:
            await self.update(record, *preloads, tx=tx)
        return records

    async def update_many_with_tx(
        self, tx: AsyncSession, records: Sequence[TData], *preloads: str
    ) -> Sequence[TData]:
        """``update_many`` inside the caller's transaction."""
        return await self.update_many(records, *preloads, tx=tx)

    # --- Upserts ---

    async def upsert(
        self,
        record: TData,
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> TData:
        """Create ``record`` if it is new or absent, otherwise update it.

        Raises:
            PersistenceError: If the existence lookup fails for any reason
                other than the record being absent.
        """
        identity = get_identity(record)
        if is_nil(identity):
            return await self.create(record, *preloads, tx=tx)

        try:
            await self.get_by_id(identity, tx=tx)
        except NotFoundError:
            logger.debug("Upsert of {} ID {} resolved to create", self.entity, identity)
            return await self.create(record, *preloads, tx=tx)

        logger.debug("Upsert of {} ID {} resolved to update", self.entity, identity)
        return await self.update(record, *preloads, tx=tx)

    async def upsert_with_tx(
        self, tx: AsyncSession, record: TData, *preloads: str
    ) -> TData:
        """``upsert`` inside the caller's transaction."""
        return await self.upsert(record, *preloads, tx=tx)

    async def upsert_many(
        self,
        records: Sequence[TData],
        *preloads: str,
        tx: AsyncSession | None = None,
    ) -> Sequence[TData]:
        """Upsert each record in turn, stopping at the first failure."""
        for record in records:
            await self.upsert(record, *preloads, tx=tx)
        return records

    async def upsert_many_with_tx(
        self, tx: AsyncSession, records: Sequence[TData], *preloads: str
    ) -> Sequence[TData]:
        """``upsert_many`` inside the caller's transaction."""
        return await self.upsert_many(records, *preloads, tx=tx)

    # --- Deletion ---

    async def delete_by_id(
        self, identity: uuid.UUID, *, tx: AsyncSession | None = None
    ) -> TData:
        """Delete the record with ``identity`` and return its last state.

        Raises:
            NotFoundError: If no record has that identity.
        """
        logger.debug("Deleting {} with ID: {}", self.entity, identity)
        stmt = self._select(()).where(self.model_class.id == identity)

        try:
            async with self._session(tx, "delete") as session:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
                if record is None:
                    raise self._not_found("delete", identity=str(identity))
                await session.delete(record)
                await session.flush()
        except SQLAlchemyError as e:
            raise self._store_error("delete", e) from e

        logger.info("Deleted {} with ID: {}", self.entity, identity)
        self._notify(self.deleted, record)
        return record

    async def delete_by_id_with_tx(
        self, tx: AsyncSession, identity: uuid.UUID
    ) -> TData:
        """``delete_by_id`` inside the caller's transaction."""
        return await self.delete_by_id(identity, tx=tx)

    async def delete(self, record: TData, *, tx: AsyncSession | None = None) -> TData:
        """Delete the stored row identified by ``record``.

        Raises:
            IdentityError: If the record has no identity.
            NotFoundError: If the row does not exist.
        """
        identity = self._require_identity(record, "delete")
        return await self.delete_by_id(identity, tx=tx)

    async def delete_with_tx(self, tx: AsyncSession, record: TData) -> TData:
        """``delete`` inside the caller's transaction."""
        return await self.delete(record, tx=tx)

    async def delete_many(
        self, records: Sequence[TData], *, tx: AsyncSession | None = None
    ) -> None:
        """Delete each record in turn, stopping at the first failure."""
        for record in records:
            await self.delete(record, tx=tx)

    async def delete_many_with_tx(
        self, tx: AsyncSession, records: Sequence[TData]
    ) -> None:
        """``delete_many`` inside the caller's transaction."""
        await self.delete_many(records, tx=tx)
