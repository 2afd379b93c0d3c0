"""Repository facade over the load and save engines."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import Connection

from entitygraph.cache.reference import ReferenceDataCache
from entitygraph.config import EngineSettings, get_database_url
from entitygraph.core.connection import DatabaseConnection
from entitygraph.core.context import current_context
from entitygraph.core.types import EntityFilter, ScalarQuery
from entitygraph.delegates import DelegateRegistry
from entitygraph.entities.base import Entity, ReadOnlyEntity
from entitygraph.entities.codes import CodeEntity
from entitygraph.exceptions import ConfigurationError
from entitygraph.graph.loader import GraphLoader, as_filter
from entitygraph.graph.saver import GraphSaver
from entitygraph.metadata.registry import MetadataRegistry, default_registry
from entitygraph.security.clearance import AccessEvaluator
from entitygraph.security.messages import MessageCatalog
from entitygraph.storage.functions import default_sql_functions
from entitygraph.storage.session import DataSession
from entitygraph.storage.statements import StatementBuilder
from entitygraph.storage.tables import TableFactory

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ReadOnlyEntity)
W = TypeVar("W", bound=Entity)
C = TypeVar("C", bound=CodeEntity)


class Repository:
    """Loads and saves entity graphs declared with ``Annotated`` markers.

    Every public call runs in one transaction. Calls made inside
    :meth:`transaction` share it.

    Example:
        repo = Repository("sqlite:///./people.db")
        repo.create_tables(Person)
        person = repo.save_entity(Person(name="Ada"))
        again = repo.get_entity(Person, person.id)
    """

    def __init__(
        self,
        url: str | DatabaseConnection | None = None,
        echo: bool = False,
        settings: EngineSettings | None = None,
        registry: MetadataRegistry | None = None,
        messages: MessageCatalog | None = None,
        delegates: DelegateRegistry | None = None,
        cache: ReferenceDataCache | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            url: Database URL or an existing connection. Falls back to the
                ENTITYGRAPH_URL environment variable, then a local SQLite file.
            echo: Whether to echo SQL statements (for debugging)
            settings: Engine settings
            registry: Metadata registry, the process-wide one by default
            messages: Message catalog for redaction placeholders
            delegates: Delegates owning External children
            cache: Reference data cache, shared between repositories when given
        """
        self.settings = settings or EngineSettings()
        if isinstance(url, DatabaseConnection):
            self._connection = url
        else:
            self._connection = DatabaseConnection(
                get_database_url(url),
                echo=echo or self.settings.echo_sql,
                sql_functions=default_sql_functions(),
            )
        self.registry = registry or default_registry
        self.delegates = delegates or DelegateRegistry()
        self.cache = cache or ReferenceDataCache()
        self.evaluator = AccessEvaluator(messages)
        self.tables = TableFactory(self.registry)
        self.session = DataSession(
            self._connection, StatementBuilder(self.tables, self.evaluator, self.settings)
        )
        self.loader = GraphLoader(self.session, self.registry, self.evaluator, self.delegates)
        self.saver = GraphSaver(
            self.session, self.loader, self.registry, self.evaluator, self.delegates, self.cache
        )

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    def __enter__(self) -> Repository:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run several repository calls in one transaction.

        Commits when the block exits normally and rolls back on any exception.
        """
        with self.session.transaction() as conn:
            yield conn

    def create_tables(self, *entity_types: type) -> list[str]:
        """Create tables for the types and every type reachable from them.

        Returns:
            Names of the tables created or already present
        """
        tables = self.tables.create_all(self._connection.engine, entity_types)
        return [t.fullname for t in tables]

    # === Loading ===

    def _resolve_filter(
        self, entity_filter: EntityFilter | dict[str, Any] | None, locale: str | None = None
    ) -> EntityFilter:
        resolved = as_filter(entity_filter)
        if locale is not None:
            resolved = resolved.model_copy(update={"locale": locale})
        elif resolved.locale is None and current_context().locale is None:
            if self.settings.default_locale is not None:
                resolved = resolved.model_copy(update={"locale": self.settings.default_locale})
        return resolved

    def _id_filter(self, entity_type: type, entity_id: Any) -> EntityFilter:
        id_columns = self.registry.id_columns(entity_type)
        if not id_columns:
            raise ConfigurationError(entity_type.__name__, "no id column declared")
        values = entity_id if isinstance(entity_id, tuple) else (entity_id,)
        if len(values) != len(id_columns):
            raise ConfigurationError(
                entity_type.__name__,
                f"expected {len(id_columns)} id values, got {len(values)}",
            )
        clauses = []
        params: dict[str, Any] = {}
        for index, (column, value) in enumerate(zip(id_columns, values, strict=True)):
            clauses.append(f"{column.column_name} = :id_{index}")
            params[f"id_{index}"] = value
        return EntityFilter(where=" AND ".join(clauses), params=params)

    def get_entity(
        self,
        entity_type: type[E],
        key: Any,
        locale: str | None = None,
    ) -> E | None:
        """Load one entity graph by id or filter.

        Args:
            entity_type: Entity class to load
            key: Id value, tuple of id values, EntityFilter or filter dict
            locale: Locale for localized columns

        Returns:
            The entity, or None if no visible row matches
        """
        if isinstance(key, (EntityFilter, dict)):
            entity_filter = self._resolve_filter(key, locale)
        else:
            entity_filter = self._resolve_filter(self._id_filter(entity_type, key), locale)
        with self.session.transaction():
            return self.loader.load(entity_type, entity_filter)

    def get_entity_list(
        self,
        entity_type: type[E],
        entity_filter: EntityFilter | dict[str, Any] | None = None,
        locale: str | None = None,
    ) -> list[E]:
        """Load every visible entity matching the filter.

        Full lists of cacheable types are served from the reference cache.
        """
        resolved = self._resolve_filter(entity_filter, locale)
        cacheable = self.registry.is_cacheable(entity_type) and resolved.is_unrestricted
        key = ""
        if cacheable:
            key = self.cache.key(entity_type, resolved.locale or current_context().locale)
            cached = self.cache.get(entity_type, key)
            if cached is not None:
                logger.debug(f"Cache hit for {key}")
                return cached
        with self.session.transaction():
            entities = self.loader.load_list(entity_type, resolved)
        if cacheable:
            self.cache.put(key, entities, entity_type)
        return entities

    def get_entity_list_by_ids(
        self,
        entity_type: type[E],
        ids: Sequence[Any],
        entity_filter: EntityFilter | dict[str, Any] | None = None,
    ) -> list[E]:
        """Load the entities whose single id column is in ``ids``."""
        if not ids:
            return []
        id_columns = self.registry.id_columns(entity_type)
        if len(id_columns) != 1:
            raise ConfigurationError(
                entity_type.__name__, "loading by id list needs exactly one id column"
            )
        resolved = self._resolve_filter(entity_filter)
        names = [f"id_{index}" for index in range(len(ids))]
        where = f"{id_columns[0].column_name} IN ({', '.join(':' + n for n in names)})"
        if resolved.where:
            where = f"({resolved.where}) AND {where}"
        resolved = resolved.model_copy(
            update={"where": where, "params": {**resolved.params, **dict(zip(names, ids))}}
        )
        with self.session.transaction():
            return self.loader.load_list(entity_type, resolved)

    def get_child_entity_list(self, parent: ReadOnlyEntity, field_name: str) -> list[Any]:
        """Load one child list of ``parent`` without loading the rest of its graph."""
        child = self.registry.child(type(parent), field_name)
        if not child.is_list:
            raise ConfigurationError(type(parent).__name__, "not a list child", field_name)
        with self.session.transaction():
            if child.is_external:
                return list(self.loader.load_external(parent, child) or [])
            return self.loader.load_child_list(parent, child)

    def get_child_id_list(self, entity_type: type, field_name: str, parent_id: Any) -> list[Any]:
        """Ids of the children linked to ``parent_id`` through a list child."""
        child = self.registry.child(entity_type, field_name)
        if not child.is_list:
            raise ConfigurationError(entity_type.__name__, "not a list child", field_name)
        return self.loader.child_id_list(child, parent_id)

    def get_code_list(self, code_type: type[C], locale: str | None = None) -> list[C]:
        return self.get_entity_list(code_type, locale=locale)

    def get_code(self, code_type: type[C], code: str | None, locale: str | None = None) -> C | None:
        """Find a code in its (cached) code list."""
        if code is None:
            return None
        return next((c for c in self.get_code_list(code_type, locale) if c.code == code), None)

    def get_scalar(self, query: ScalarQuery | dict[str, Any]) -> Any:
        """First value of a single-column query, or None."""
        return self.session.query_scalar(ScalarQuery.model_validate(query))

    def get_scalar_list(self, query: ScalarQuery | dict[str, Any]) -> list[Any]:
        return self.session.query_scalar_list(ScalarQuery.model_validate(query))

    def execute_query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        entity_type: type[E] | None = None,
    ) -> list[Any]:
        """Run a raw SELECT.

        Returns:
            Entities of ``entity_type`` when given, otherwise row dicts
        """
        if entity_type is None:
            return self.session.execute_sql(sql, params)
        entity_filter = self._resolve_filter(EntityFilter(sql=sql, params=params or {}))
        with self.session.transaction():
            return self.loader.load_list(entity_type, entity_filter)

    # === Saving ===

    def save_entity(self, entity: W | None) -> W | None:
        """Save an entity graph in one transaction.

        Returns:
            The saved entity, or None when the save deleted it

        Raises:
            ConcurrencyConflictError: If a versioned row changed since load;
                nothing from the graph is written
        """
        with self.session.transaction():
            return self.saver.save(entity)

    def refresh_entity(self, entity: E) -> E:
        """Re-read the entity's columns from storage. Children are untouched."""
        with self.session.transaction():
            return self.loader.refresh(entity)

    def bulk_update(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a data-changing statement and return the affected row count."""
        return self.session.bulk_update(sql, params)

    # === Call context ===

    def set_load_inhibitors(self, *items: type | str) -> None:
        """Skip loading children of these types (or field names) in this context."""
        names: Iterable[str] = (i if isinstance(i, str) else i.__name__ for i in items)
        current_context().load_inhibitors.update(names)

    def clear_load_inhibitors(self) -> None:
        current_context().load_inhibitors.clear()

    def clear_entity_lists(self, entity_type: type) -> int:
        """Drop cached lists of ``entity_type`` so the next read hits storage."""
        return self.cache.invalidate(entity_type)
