"""Reporting data engine.

``ReportingEngine`` is the single entry point the surrounding request
handlers use. It wires the connector layer, schema/profile detection, the
statistics library, the pipeline executor and the result cache together.

Collaborators are constructor-injected:
- ``cache``: anything implementing get_or_set/delete/delete_pattern/clear
- ``credential_decryptor``: turns an opaque encrypted blob into a connection
  config dict; called just-in-time, the plaintext is never stored
- ``dataset_resolver``: loads fresh metadata snapshots per call
- ``query_log_writer``: receives raw-query execution records

Metadata is never cached; only fetched rows and computed results are.

Usage:
    engine = ReportingEngine(settings, credential_decryptor=vault.decrypt)
    engine.start()
    page = engine.fetch_dataset(tenant_id, dataset_id, {"limit": 50})
    run = engine.preview_transformation(tenant_id, transformation_id)
    engine.close()
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import httpx

from reportstudio.analysis.profiling import DataProfile, QualityReport
from reportstudio.analysis.profiling import generate_quality_report as build_quality_report
from reportstudio.analysis.profiling import profile_data as build_profile
from reportstudio.analysis.statistics import list_functions
from reportstudio.analysis.statistics import run_function as dispatch_function
from reportstudio.analysis.typing import (
    TypeInferenceConfig,
    load_type_inference_config,
)
from reportstudio.analysis.typing import detect_schema as infer_schema
from reportstudio.cache import Cache, CacheManager, make_cache_key, resource_pattern
from reportstudio.cache.keys import FETCH, PREVIEW, PROFILE, RUN
from reportstudio.core.config import Settings, get_settings
from reportstudio.core.connections import ConnectionConfig, ConnectionManager
from reportstudio.core.errors import (
    NotFoundError,
    SourceConnectionError,
    TransformationStepError,
    ValidationError,
)
from reportstudio.core.logging import get_logger, log_context
from reportstudio.core.models import (
    ColumnDescriptor,
    DatasetSnapshot,
    DataSourceSnapshot,
    SourceKind,
    SourceStatus,
    TransformationSnapshot,
)
from reportstudio.pipeline import RunResult, TransformationExecutor, TransformationResult
from reportstudio.pipeline import execute_transformation as apply_step
from reportstudio.sources import (
    ApiSource,
    ConnectorBase,
    ConnectorFactory,
    DatabaseSource,
    FetchOptions,
    FetchResult,
    FileSource,
    parse_source,
)
from reportstudio.sources.database import (
    ConnectionTestResult,
    QueryResult,
    check_query_safety,
)
from reportstudio.sources.null_values import NullValueConfig
from reportstudio.storage.query_log import QueryExecutionLogWriter
from reportstudio.storage.snapshots import MetadataResolver, SqlMetadataResolver

logger = get_logger(__name__)

CredentialDecryptor = Callable[[str], dict[str, Any]]

# Options that select a file format rather than parse it
_FILE_FORMAT_KEY = "format"


def _database_descriptor(
    source: DataSourceSnapshot, config: dict[str, Any], table_name: str | None = None
) -> DatabaseSource:
    provider = source.provider or config.get("provider") or ""
    descriptor = parse_source(
        {
            "kind": SourceKind.DATABASE,
            "provider": str(provider).upper(),
            "table_name": table_name,
            "data_source_id": source.id,
        }
    )
    assert isinstance(descriptor, DatabaseSource)
    return descriptor


class _FailedRun(Exception):
    """Carries a failed run out of a cache computation so nothing is stored."""

    def __init__(self, result: RunResult):
        super().__init__(result.failed_step_id)
        self.result = result


class ReportingEngine:
    """Facade over connectors, profiling, statistics, pipelines and the cache.

    Args:
        settings: Engine settings (defaults to ``get_settings()``)
        cache: Result cache; a CacheManager built from settings when omitted
        credential_decryptor: Decrypts a data source's connection config
        query_log_writer: Sink for raw-query execution records
        dataset_resolver: Metadata snapshot loader; the SQL store when omitted
        manager: Connection manager (metadata store + DuckDB)
        http_transport: httpx transport for API sources (tests)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: Cache | None = None,
        credential_decryptor: CredentialDecryptor | None = None,
        query_log_writer: QueryExecutionLogWriter | None = None,
        dataset_resolver: MetadataResolver | None = None,
        manager: ConnectionManager | None = None,
        http_transport: httpx.BaseTransport | None = None,
        type_config: TypeInferenceConfig | None = None,
        null_config: NullValueConfig | None = None,
    ):
        self.settings = settings or get_settings()
        self._owns_manager = manager is None
        if manager is None:
            manager = ConnectionManager(ConnectionConfig.from_settings(self.settings))
        manager.initialize()
        self.manager = manager

        if cache is None:
            cache = CacheManager.from_settings(self.settings)
        self.cache: Cache = cache
        self.credential_decryptor = credential_decryptor
        self.query_log_writer = query_log_writer
        self.resolver: MetadataResolver = dataset_resolver or SqlMetadataResolver(manager)
        self.type_config = type_config or load_type_inference_config(
            self.settings.config_path / "type_inference.yaml"
        )
        self.connectors = ConnectorFactory(
            self.settings,
            manager,
            query_log_writer=query_log_writer,
            null_config=null_config,
            http_transport=http_transport,
        )
        self.executor = TransformationExecutor(manager)

    # === Lifecycle ===

    def start(self) -> None:
        """Start background work (the cache sweeper)."""
        if isinstance(self.cache, CacheManager):
            self.cache.start()

    def close(self) -> None:
        if isinstance(self.cache, CacheManager):
            self.cache.stop()
        if self.query_log_writer is not None:
            self.query_log_writer.close()
        if self._owns_manager:
            self.manager.close()

    def __enter__(self) -> ReportingEngine:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # === Metadata ===

    def _dataset(self, tenant_id: str, dataset_id: str) -> DatasetSnapshot:
        snapshot = self.resolver.get_dataset(tenant_id, dataset_id)
        if snapshot is None:
            raise NotFoundError("Dataset", dataset_id)
        return snapshot

    def _data_source(self, tenant_id: str, data_source_id: str) -> DataSourceSnapshot:
        snapshot = self.resolver.get_data_source(tenant_id, data_source_id)
        if snapshot is None:
            raise NotFoundError("Data source", data_source_id)
        if snapshot.status != SourceStatus.ACTIVE:
            raise SourceConnectionError(
                "Data source is not active", {"status": snapshot.status.value}
            )
        return snapshot

    def _transformation(self, tenant_id: str, transformation_id: str) -> TransformationSnapshot:
        snapshot = self.resolver.get_transformation(tenant_id, transformation_id)
        if snapshot is None:
            raise NotFoundError("Transformation", transformation_id)
        return snapshot

    def _decrypt(self, source: DataSourceSnapshot) -> dict[str, Any]:
        if not source.encrypted_config:
            return {}
        if self.credential_decryptor is None:
            raise SourceConnectionError(
                "No credential decryptor configured", {"data_source_id": source.id}
            )
        try:
            return self.credential_decryptor(source.encrypted_config)
        except (ValueError, TypeError, KeyError) as e:
            # Never log the blob or the decrypted config
            logger.warning(
                "credential_decrypt_failed", data_source_id=source.id, error=type(e).__name__
            )
            raise SourceConnectionError("Could not read data source credentials") from e

    # === Connector layer ===

    def _fetch_cached(
        self,
        connector: ConnectorBase,
        options: FetchOptions,
        tenant_id: str | None,
        resource_id: str | None,
        use_cache: bool = True,
    ) -> FetchResult:
        if not (use_cache and tenant_id and resource_id):
            return connector.fetch(options)
        key = make_cache_key(FETCH, tenant_id, resource_id, options.model_dump(mode="json"))
        return self.cache.get_or_set(
            key, lambda: connector.fetch(options), self.settings.cache_ttl_seconds
        )

    def fetch_data(
        self,
        source: dict[str, Any] | FileSource | DatabaseSource | ApiSource,
        connection_config: dict[str, Any] | None = None,
        options: dict[str, Any] | FetchOptions | None = None,
        tenant_id: str | None = None,
        dataset_id: str | None = None,
        use_cache: bool = True,
    ) -> FetchResult:
        """Fetch one page of rows from a source.

        Results are cached per ``(tenant, dataset, options)`` when a dataset
        id is given; ad hoc fetches are never cached.

        Args:
            source: Source descriptor (``kind`` FILE | DATABASE | API)
            connection_config: Decrypted connection config
            options: Fetch options
            tenant_id: Owning tenant
            dataset_id: Dataset the fetch belongs to (cache identity)

        Raises:
            ValidationError: Invalid descriptor or options
            SourceConnectionError: Source unreachable
            QueryExecutionError: Source read failed
        """
        opts = FetchOptions.parse(options)
        descriptor = parse_source(source)
        connector = self.connectors.create(descriptor, connection_config, tenant_id or "")
        return self._fetch_cached(connector, opts, tenant_id, dataset_id, use_cache)

    def _dataset_connector(
        self, dataset: DatasetSnapshot, visiting: frozenset[str]
    ) -> ConnectorBase:
        if dataset.file_path is not None:
            opts = dict(dataset.source_options)
            fmt = opts.pop(_FILE_FORMAT_KEY, None)
            source_file = FileSource(path=dataset.file_path, format=fmt, options=opts)
            return self.connectors.file(source_file)

        if dataset.data_source_id is not None:
            source = self._data_source(dataset.tenant_id, dataset.data_source_id)
            config = self._decrypt(source)
            if source.kind == SourceKind.DATABASE:
                descriptor = _database_descriptor(source, config, dataset.table_name)
                return self.connectors.database(descriptor, config, dataset.tenant_id)
            if source.kind == SourceKind.API:
                return self.connectors.api(config)
            if source.kind == SourceKind.FILE:
                file_opts = dict(config.get("options") or {})
                return self.connectors.file(
                    FileSource(path=config["path"], format=config.get("format"), options=file_opts)
                )
            raise ValidationError(
                f"Unsupported data source kind: {source.kind.value}",
                expected={"kind": ["FILE", "DATABASE", "API"]},
            )

        assert dataset.transformation_id is not None
        tenant_id, transformation_id = dataset.tenant_id, dataset.transformation_id

        def load() -> tuple[list[str], list[dict[str, Any]]]:
            result = self._run(tenant_id, transformation_id, None, visiting).raise_for_status()
            assert result.output is not None
            return result.output.columns, result.output.data

        return self.connectors.dataset(load)

    def fetch_dataset(
        self,
        tenant_id: str,
        dataset_id: str,
        options: dict[str, Any] | FetchOptions | None = None,
        use_cache: bool = True,
    ) -> FetchResult:
        """Fetch a page of a stored dataset, whatever backs it."""
        return self._fetch_dataset(tenant_id, dataset_id, options, use_cache, frozenset())

    def _fetch_dataset(
        self,
        tenant_id: str,
        dataset_id: str,
        options: dict[str, Any] | FetchOptions | None,
        use_cache: bool,
        visiting: frozenset[str],
    ) -> FetchResult:
        opts = FetchOptions.parse(options)
        dataset = self._dataset(tenant_id, dataset_id)
        connector = self._dataset_connector(dataset, visiting)
        with log_context(tenant_id=tenant_id, dataset_id=dataset_id):
            return self._fetch_cached(connector, opts, tenant_id, dataset_id, use_cache)

    def _dataset_records(
        self, tenant_id: str, dataset_id: str, visiting: frozenset[str]
    ) -> list[dict[str, Any]]:
        """All rows of a dataset up to the system row cap."""
        limit = FetchOptions(limit=self.settings.max_query_rows)
        return self._fetch_dataset(tenant_id, dataset_id, limit, True, visiting).records()

    def list_tables(self, tenant_id: str, data_source_id: str) -> list[str]:
        source = self._data_source(tenant_id, data_source_id)
        if source.kind != SourceKind.DATABASE:
            raise ValidationError(
                "Tables can only be listed for database sources", expected={"kind": "DATABASE"}
            )
        config = self._decrypt(source)
        descriptor = _database_descriptor(source, config)
        return self.connectors.database(descriptor, config, tenant_id).list_tables()

    def test_connection(
        self,
        source: dict[str, Any] | FileSource | DatabaseSource | ApiSource,
        connection_config: dict[str, Any] | None = None,
    ) -> ConnectionTestResult:
        """Check that a source is reachable. Never raises for connection failures."""
        descriptor = parse_source(source)
        connector = self.connectors.create(descriptor, connection_config)
        if isinstance(descriptor, DatabaseSource):
            return connector.test_connection()  # type: ignore[attr-defined,no-any-return]
        try:
            connector.fetch(FetchOptions(limit=1))
        except (SourceConnectionError, ValidationError) as e:
            return ConnectionTestResult(success=False, message=e.message)
        return ConnectionTestResult(success=True, message="Connection successful")

    def execute_query(
        self,
        tenant_id: str,
        data_source_id: str,
        query: str,
        limit: int | None = None,
        user_id: str | None = None,
    ) -> QueryResult:
        """Run a raw read-only query against a database data source.

        The write/DDL denylist is checked before the data source is even
        resolved. It is a leading-keyword denylist, not a SQL parser.

        Raises:
            UnsafeQueryError: Leading keyword is on the denylist
            NotFoundError: Unknown data source
            QueryExecutionError: Query failed or timed out
        """
        check_query_safety(query)
        source = self._data_source(tenant_id, data_source_id)
        if source.kind != SourceKind.DATABASE:
            raise ValidationError(
                "Raw queries require a database source", expected={"kind": "DATABASE"}
            )
        config = self._decrypt(source)
        descriptor = _database_descriptor(source, config)
        connector = self.connectors.database(descriptor, config, tenant_id)
        with log_context(tenant_id=tenant_id, data_source_id=data_source_id):
            return connector.execute_query(query, limit=limit, user_id=user_id)

    # === Schema and profiling ===

    def detect_schema(
        self,
        rows: Sequence[dict[str, Any]] | Sequence[Sequence[Any]],
        columns: Sequence[str] | None = None,
    ) -> list[ColumnDescriptor]:
        return infer_schema(rows, columns, self.type_config)

    def profile_data(
        self,
        rows: Sequence[dict[str, Any]] | Sequence[Sequence[Any]],
        schema: list[ColumnDescriptor] | None = None,
        columns: Sequence[str] | None = None,
        declared_schema: list[ColumnDescriptor] | None = None,
        sample_size: int | None = None,
    ) -> DataProfile:
        """Profile rows; estimates over the first ``sample_size`` rows."""
        if sample_size is None:
            sample_size = self.settings.profile_sample_size
        with self.manager.duckdb_cursor() as cursor:
            return build_profile(
                rows,
                schema=schema,
                columns=columns,
                declared_schema=declared_schema,
                sample_size=sample_size,
                config=self.type_config,
                cursor=cursor,
            )

    def generate_quality_report(self, profile: DataProfile) -> QualityReport:
        return build_quality_report(profile)

    def profile_dataset(self, tenant_id: str, dataset_id: str) -> DataProfile:
        """Profile a stored dataset against its declared schema, if any."""
        dataset = self._dataset(tenant_id, dataset_id)
        sample = self.settings.profile_sample_size or self.settings.max_query_rows
        sample = min(sample, self.settings.max_query_rows)

        def compute() -> DataProfile:
            page = self.fetch_dataset(tenant_id, dataset_id, FetchOptions(limit=sample))
            profile = self.profile_data(
                page.rows,
                columns=page.columns,
                declared_schema=dataset.declared_columns,
                sample_size=sample,
            )
            if page.total_count is not None and page.total_count > page.row_count:
                profile = profile.model_copy(
                    update={"row_count": page.total_count, "is_sample": True}
                )
            return profile

        key = make_cache_key(PROFILE, tenant_id, dataset_id, {"sample": sample})
        return self.cache.get_or_set(key, compute, self.settings.cache_ttl_seconds)

    def dataset_quality_report(self, tenant_id: str, dataset_id: str) -> QualityReport:
        return self.generate_quality_report(self.profile_dataset(tenant_id, dataset_id))

    # === Statistics ===

    def run_function(self, name: str, data: Any, options: dict[str, Any] | None = None) -> Any:
        """Named dispatch into the statistical function library."""
        return dispatch_function(name, data, options)

    def list_functions(self) -> list[dict[str, Any]]:
        return list_functions()

    # === Transformations ===

    def execute_transformation(
        self,
        operator: str,
        rows: list[dict[str, Any]],
        config: dict[str, Any] | None,
        secondary: list[dict[str, Any]] | None = None,
    ) -> TransformationResult:
        """Apply a single operator; failures are reported in ``error``."""
        with self.manager.duckdb_cursor() as cursor:
            return apply_step(operator, rows, config, secondary, cursor)

    def _run(
        self,
        tenant_id: str,
        transformation_id: str,
        preview_rows: int | None,
        visiting: frozenset[str],
        use_cache: bool = True,
    ) -> RunResult:
        if transformation_id in visiting:
            raise TransformationStepError(
                "Transformation input depends on its own output",
                details={"transformation_ids": sorted(visiting | {transformation_id})},
            )
        transformation = self._transformation(tenant_id, transformation_id)
        visiting = visiting | {transformation_id}

        def compute() -> RunResult:
            rows = self._dataset_records(tenant_id, transformation.input_dataset_id, visiting)
            result = self.executor.run(transformation, rows, preview_rows)
            if not result.success:
                raise _FailedRun(result)
            return result

        if not use_cache:
            try:
                return compute()
            except _FailedRun as e:
                return e.result

        # Step edits change the snapshot and therefore the key
        params = {
            "input": transformation.input_dataset_id,
            "steps": [s.model_dump(mode="json") for s in transformation.ordered_steps],
            "preview_rows": preview_rows,
        }
        namespace = RUN if preview_rows is None else PREVIEW
        key = make_cache_key(namespace, tenant_id, transformation_id, params)
        try:
            return self.cache.get_or_set(key, compute, self.settings.cache_ttl_seconds)
        except _FailedRun as e:
            return e.result

    def run_transformation(
        self, tenant_id: str, transformation_id: str, use_cache: bool = True
    ) -> RunResult:
        """Run a stored transformation over its input dataset.

        Failed runs are returned (never cached) with the failing step
        identified; call ``raise_for_status()`` to turn them into errors.
        """
        with log_context(tenant_id=tenant_id):
            return self._run(tenant_id, transformation_id, None, frozenset(), use_cache)

    def preview_transformation(
        self,
        tenant_id: str,
        transformation_id: str,
        rows: int | None = None,
        use_cache: bool = True,
    ) -> RunResult:
        """Run a stored transformation and truncate only the final output."""
        preview_rows = rows if rows is not None else self.settings.preview_rows
        if preview_rows < 1:
            raise ValidationError("Preview row count must be positive", expected="int >= 1")
        with log_context(tenant_id=tenant_id):
            return self._run(tenant_id, transformation_id, preview_rows, frozenset(), use_cache)

    # === Invalidation ===

    def _downstream(
        self, tenant_id: str, dataset_ids: list[str], transformation_ids: list[str]
    ) -> list[str]:
        """Resources whose cached results derive from the given ones, inputs included.

        Walks dataset -> transformations reading it -> datasets derived from
        those transformations, until no new resource appears.
        """
        seen: list[str] = []
        datasets, transformations = list(dataset_ids), list(transformation_ids)
        while datasets or transformations:
            if datasets:
                dataset_id = datasets.pop()
                if dataset_id in seen:
                    continue
                seen.append(dataset_id)
                readers = self.resolver.transformations_reading(tenant_id, dataset_id)
                transformations.extend(readers)
            else:
                transformation_id = transformations.pop()
                if transformation_id in seen:
                    continue
                seen.append(transformation_id)
                datasets.extend(self.resolver.datasets_derived_from(tenant_id, transformation_id))
        return seen

    def _invalidate(self, tenant_id: str, resources: list[str]) -> int:
        return sum(self.cache.delete_pattern(resource_pattern(tenant_id, r)) for r in resources)

    def invalidate_dataset(self, tenant_id: str, dataset_id: str) -> int:
        """Drop every cached entry about a dataset and everything derived from it.

        Runs and previews of transformations reading the dataset go too, as
        do the datasets those transformations produce.

        Returns:
            Number of cache entries removed
        """
        resources = self._downstream(tenant_id, [dataset_id], [])
        removed = self._invalidate(tenant_id, resources)
        logger.info(
            "dataset_invalidated",
            tenant_id=tenant_id,
            dataset_id=dataset_id,
            resources=len(resources),
            removed=removed,
        )
        return removed

    def invalidate_transformation(self, tenant_id: str, transformation_id: str) -> int:
        """Drop cached runs and previews of a transformation and of its output datasets."""
        resources = self._downstream(tenant_id, [], [transformation_id])
        removed = self._invalidate(tenant_id, resources)
        logger.info(
            "transformation_invalidated",
            tenant_id=tenant_id,
            transformation_id=transformation_id,
            resources=len(resources),
            removed=removed,
        )
        return removed
