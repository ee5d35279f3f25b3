"""
BigQuery DB adapter - CRUD surface for a service's generic DB layer.

Each public operation follows the same path:

    tenant context -> table, region, primary key
    raw filters    -> FilterDescriptor (filters.normalize)
    descriptor     -> SQL + query params (sql_builder)
    SQL            -> query_wrapper -> QueryEngine.run(location=region)
    rows           -> shaped result

BigQuery DML does not return the affected rows, so:
- insert/update run the mutation and a SELECT of the same keys in one
  job and return that SELECT's rows
- remove reads the matching rows in one job, deletes them in a second
  job and returns the rows it read. A concurrent writer can change the
  table between those two jobs; nothing at this layer prevents that.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from bq_db_adapter.config import AdapterConfig
from bq_db_adapter.context import TenantContext, resolve_context
from bq_db_adapter.errors import ConfigurationError
from bq_db_adapter.filters import FilterDescriptor, normalize, normalize_where
from bq_db_adapter.gateway import BigQueryEngine, QueryEngine
from bq_db_adapter.sql_builder import (
    COUNT_FIELD,
    StatementBatch,
    build_count,
    build_delete,
    build_find,
    build_find_by_ids,
    build_find_one,
    build_insert,
    build_update,
)

logger = logging.getLogger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class Route:
    """Where a single call runs: resolved context, table, region and key."""
    context: TenantContext
    table: str
    region: str
    primary_key: str


class BigQueryDbAdapter:
    """Adapter exposing find/count/insert/update/remove over BigQuery.

    One adapter instance serves any number of tenants and concurrent
    calls; per-call state lives in local variables only.
    """

    def __init__(self, *opts: Any):
        self.opts = list(opts)
        self.config: AdapterConfig | None = None
        self.engine: QueryEngine | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self, config: AdapterConfig | None, engine: QueryEngine | None = None) -> None:
        """Validate settings and set up the query engine.

        Raises:
            ConfigurationError: If settings are missing or invalid
        """
        if config is None:
            raise ConfigurationError(
                "Missing settings definition! Please provide a BigQuery AdapterConfig."
            )
        config.validate()

        self.config = config
        self.engine = engine or BigQueryEngine(
            config.project_id,
            job_timeout=config.job_timeout,
            show_logs=config.show_logs,
        )

    def connect(self) -> None:
        self._require_init()
        logger.info(f"BigQuery connected to projectId: {self.config.project_id}")

    def disconnect(self) -> bool:
        # The client holds no pooled connections; nothing to release.
        if self.engine is not None:
            logger.info("Closing BigQuery instance connection")
        return True

    def _require_init(self) -> None:
        if self.config is None or self.engine is None:
            raise ConfigurationError("Adapter used before init() was called")

    # -------------------------------------------------------------------------
    # Routing and execution
    # -------------------------------------------------------------------------

    def _route(self, context: Any, *payloads: Any) -> tuple[Route, list[Any]]:
        self._require_init()
        ctx, stripped = resolve_context(context, self.config.get_table_name, *payloads)

        region = ctx.region or self.config.get_region(ctx) or self.config.default_location
        primary_key = self.config.get_id_key(ctx)
        if not primary_key:
            raise ConfigurationError(f"get_id_key returned no primary key for tenant '{ctx.impact}'")

        return Route(context=ctx, table=ctx.table_name, region=region, primary_key=primary_key), stripped

    def _where(self, route: Route, where: Mapping[str, Any] | None) -> dict[str, Any]:
        return normalize_where(where, route.primary_key, self.config.query_blacklist)

    def _run(self, route: Route, batch: StatementBatch) -> list[Row]:
        sql = batch.render()
        if self.config.query_wrapper is not None:
            sql = self.config.query_wrapper(sql, route.region)
        return self.engine.run(sql, location=route.region, query_params=batch.query_params)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find(self, context: Any = None, filters: Mapping[str, Any] | None = None) -> list[Row]:
        """Find all entities matching filters.

        Available filter props:
            - limit
            - offset
            - sort
            - search
            - searchFields
            - query
        """
        route, (filters,) = self._route(context, filters)
        descriptor = normalize(filters, route.primary_key, self.config.query_blacklist)

        batch = StatementBatch()
        batch.add(build_find(route.table, descriptor, batch.query_params))
        return self._run(route, batch)

    def find_one(self, context: Any = None, query: Mapping[str, Any] | None = None) -> Row | None:
        """Find the first entity matching an equality query, or None."""
        route, (query,) = self._route(context, query)

        batch = StatementBatch()
        batch.add(build_find_one(route.table, self._where(route, query), batch.query_params))
        rows = self._run(route, batch)
        return rows[0] if rows else None

    def find_by_id(self, context: Any, id: Any) -> Row | None:
        route, _ = self._route(context)

        batch = StatementBatch()
        batch.add(build_find_one(route.table, {route.primary_key: id}, batch.query_params))
        rows = self._run(route, batch)
        return rows[0] if rows else None

    def find_by_ids(self, context: Any, ids: list[Any]) -> list[Row]:
        route, _ = self._route(context)

        batch = StatementBatch()
        batch.add(build_find_by_ids(route.table, route.primary_key, ids, batch.query_params))
        return self._run(route, batch)

    def count(self, context: Any = None, filters: Mapping[str, Any] | None = None) -> int:
        """Count entities matching filters (limit, offset and sort are ignored)."""
        route, (filters,) = self._route(context, filters)
        descriptor = normalize(
            filters, route.primary_key, self.config.query_blacklist, count_only=True
        )

        batch = StatementBatch()
        batch.add(build_count(route.table, descriptor, route.primary_key, batch.query_params))
        rows = self._run(route, batch)
        return int(rows[0][COUNT_FIELD]) if rows else 0

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _keys_of(self, route: Route, entities: list[Mapping[str, Any]]) -> list[Any]:
        keys = []
        for entity in entities:
            if entity.get(route.primary_key) is None:
                raise ValueError(f"Entity is missing primary key '{route.primary_key}'")
            keys.append(entity[route.primary_key])
        return keys

    def insert(self, context: Any, entity: Mapping[str, Any]) -> list[Row]:
        """Insert an entity and return the stored row(s) for its key."""
        return self.insert_many(context, [entity])

    def insert_many(self, context: Any, entities: list[Mapping[str, Any]]) -> list[Row]:
        """Insert entities and return the stored rows for their keys."""
        route, (entities,) = self._route(context, list(entities))
        if not entities:
            return []
        keys = self._keys_of(route, entities)

        batch = StatementBatch()
        batch.add(build_insert(route.table, entities, batch.query_params))
        batch.add(build_find_by_ids(route.table, route.primary_key, keys, batch.query_params))
        logger.debug(f"Inserting {len(entities)} row(s) into {route.table}")
        return self._run(route, batch)

    def update_many(
        self, context: Any, where: Mapping[str, Any], update: Mapping[str, Any]
    ) -> list[Row]:
        """Update entities matching where and return the rows matching it afterwards."""
        route, (where, update) = self._route(context, where, update)
        where = self._where(route, where)

        batch = StatementBatch()
        batch.add(build_update(route.table, where, update, batch.query_params))
        batch.add(build_find(route.table, FilterDescriptor(where=where), batch.query_params))
        return self._run(route, batch)

    def update_by_id(self, context: Any, id: Any, update: Mapping[str, Any]) -> list[Row]:
        """Update one entity by primary key and return its row(s) afterwards."""
        route, (update,) = self._route(context, update)
        where = {route.primary_key: id}

        batch = StatementBatch()
        batch.add(build_update(route.table, where, update, batch.query_params))
        batch.add(build_find(route.table, FilterDescriptor(where=where), batch.query_params))
        return self._run(route, batch)

    def _remove(self, route: Route, where: dict[str, Any]) -> list[Row]:
        # Pre-image and DELETE are separate jobs: a job only returns the
        # rows of its last statement.
        pre = StatementBatch()
        pre.add(build_find(route.table, FilterDescriptor(where=where), pre.query_params))
        removed = self._run(route, pre)

        delete = StatementBatch()
        delete.add(build_delete(route.table, where, delete.query_params))
        self._run(route, delete)

        logger.debug(f"Removed {len(removed)} row(s) from {route.table}")
        return removed

    def remove_many(self, context: Any = None, where: Mapping[str, Any] | None = None) -> list[Row]:
        """Remove entities matching where and return the rows read before deleting."""
        route, (where,) = self._route(context, where)
        return self._remove(route, self._where(route, where))

    def remove_by_id(self, context: Any, id: Any) -> list[Row]:
        """Remove one entity by primary key and return the row(s) read before deleting."""
        route, _ = self._route(context)
        return self._remove(route, {route.primary_key: id})

    # -------------------------------------------------------------------------
    # Compatibility helpers for the host DB layer
    # -------------------------------------------------------------------------

    def entity_to_object(self, entity: Mapping[str, Any]) -> dict[str, Any]:
        return dict(entity)

    def before_save_transform_id(self, entity: Any, id_field: str) -> Any:
        return entity

    def after_retrieve_transform_id(self, entity: Any, id_field: str) -> Any:
        return entity
