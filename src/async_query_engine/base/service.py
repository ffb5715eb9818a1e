# src/async_query_engine/base/service.py

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from .config import EngineSettings
from .create import CreateBuilder, WriteBuilder
from .delete import DeleteBuilder
from .interfaces import ExecutionAdapter
from .mapping import convert
from .query import Pager, Query
from .query_builder import QueryBuilder
from .schema import TableSpec, as_table_spec
from .uniqueness import build_rules
from .update import UpdateBuilder

T = TypeVar("T")
D = TypeVar("D")


@dataclass(frozen=True)
class CrudConfig:
    """
    Write policy of a CrudService.

    Attributes:
        create_only / create_omit: Column allow/deny list on create.
        update_only / update_omit: Column allow/deny list on update.
        unique: Fields that must each be unique.
        unique_together: Field groups that must be unique as a combination.
    """

    create_only: Tuple[str, ...] = ()
    create_omit: Tuple[str, ...] = ()
    update_only: Tuple[str, ...] = ()
    update_omit: Tuple[str, ...] = ()
    unique: Tuple[str, ...] = ()
    unique_together: Tuple[Tuple[str, ...], ...] = field(default_factory=tuple)


class CrudService(Generic[T]):
    """
    Create/read/update/delete for one table, driven by Query values.

    Example:
        service = CrudService(executor, users_table, User, CrudConfig(unique=("email",)))
        pager = await service.page(Query.from_dict(payload))
        user = await service.update(7, {"name": "Ann"})
    """

    def __init__(
        self,
        executor: ExecutionAdapter,
        table: Union[TableSpec, str],
        entity_type: Optional[Type[T]] = None,
        config: Optional[CrudConfig] = None,
        settings: Optional[EngineSettings] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
        timeout: Optional[float] = None,
    ):
        self._executor = executor
        self._table = as_table_spec(table)
        self._entity_type = entity_type
        self._config = config or CrudConfig()
        self._rules = build_rules(self._config.unique, self._config.unique_together)
        self._settings = settings
        self._timeout = timeout
        entity_name = entity_type.__name__ if entity_type is not None else "dict"
        self._logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{self._table.table}:{entity_name}]"
        )

    @property
    def table(self) -> TableSpec:
        return self._table

    @property
    def config(self) -> CrudConfig:
        return self._config

    def _builder_kwargs(self, query: Optional[Query]) -> dict:
        return dict(
            query=query,
            settings=self._settings,
            logger=self._logger,
            timeout=self._timeout,
        )

    # --- Builders ---
    def query(self, query: Optional[Query] = None) -> QueryBuilder[T]:
        return QueryBuilder(
            self._executor, self._table, self._entity_type, **self._builder_kwargs(query)
        )

    def _configure(self, builder: WriteBuilder, only: Sequence[str], omit: Sequence[str]):
        if only:
            builder = builder.only(*only)
        if omit:
            builder = builder.omit(*omit)
        return builder.with_rules(self._rules)

    def creator(self) -> CreateBuilder[T]:
        builder = CreateBuilder(
            self._executor, self._table, self._entity_type, **self._builder_kwargs(None)
        )
        return self._configure(builder, self._config.create_only, self._config.create_omit)

    def updater(self, query: Optional[Query] = None) -> UpdateBuilder[T]:
        builder = UpdateBuilder(
            self._executor, self._table, self._entity_type, **self._builder_kwargs(query)
        )
        return self._configure(builder, self._config.update_only, self._config.update_omit)

    def deleter(self, query: Optional[Query] = None) -> DeleteBuilder[T]:
        return DeleteBuilder(
            self._executor, self._table, self._entity_type, **self._builder_kwargs(query)
        )

    # --- Reads ---
    async def get(self, query: Optional[Query] = None, timeout: Optional[float] = None) -> List[T]:
        return await self.query(query).get(timeout)

    async def page(self, query: Optional[Query] = None, timeout: Optional[float] = None) -> Pager[T]:
        return await self.query(query).page(timeout)

    async def first(self, query: Optional[Query] = None, timeout: Optional[float] = None) -> T:
        return await self.query(query).first(timeout)

    async def find(self, id: Any, query: Optional[Query] = None, timeout: Optional[float] = None) -> T:
        return await self.query(query).find(id, timeout)

    async def count(self, query: Optional[Query] = None, timeout: Optional[float] = None) -> int:
        return await self.query(query).count(timeout)

    async def exists(self, query: Optional[Query] = None, timeout: Optional[float] = None) -> bool:
        return await self.query(query).exists(timeout)

    async def exists_by_id(self, id: Any, timeout: Optional[float] = None) -> bool:
        return await self.query().exists_by_id(id, timeout)

    # --- Writes ---
    async def create(self, record: Any, timeout: Optional[float] = None) -> T:
        """Inserts `record` under the create column policy and uniqueness rules."""
        return await self.creator().create(record, timeout)

    async def update(self, id: Any, values: Any, timeout: Optional[float] = None) -> T:
        """Updates the row with primary key `id` under the update column policy."""
        return await self.updater().update_by_id(id, values, timeout)

    async def update_where(self, query: Query, values: Any, timeout: Optional[float] = None) -> int:
        return await self.updater(query).update(values, timeout)

    async def delete(self, query: Query, timeout: Optional[float] = None) -> int:
        return await self.deleter(query).delete(timeout)

    async def delete_by_id(
        self, id: Any, extra: Optional[Query] = None, timeout: Optional[float] = None
    ) -> int:
        return await self.deleter().delete_by_id(id, extra, timeout)

    # --- DTOs ---
    @staticmethod
    def to_dto(items: Union[Any, Sequence[Any]], dto_type: Type[D]) -> Union[D, List[D]]:
        """Converts one record, or a list of records, into `dto_type` instances."""
        if isinstance(items, list):
            return [convert(item, dto_type) for item in items]
        return convert(items, dto_type)
