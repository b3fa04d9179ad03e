"""Source descriptors and connector construction.

Each source kind is one tagged descriptor variant; ``ConnectorFactory``
turns a descriptor plus its decrypted connection config into a connector.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from reportstudio.core.config import Settings
from reportstudio.core.connections import ConnectionManager
from reportstudio.core.errors import ValidationError
from reportstudio.core.models import DatabaseProvider, SourceKind
from reportstudio.sources.api import ApiConnector
from reportstudio.sources.base import ConnectorBase, pydantic_errors
from reportstudio.sources.database import DatabaseConnector
from reportstudio.sources.dataset import DatasetConnector, RecordsLoader
from reportstudio.sources.file import FileConnector
from reportstudio.sources.null_values import NullValueConfig, load_null_value_config
from reportstudio.storage.query_log import QueryExecutionLogWriter


class FileSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[SourceKind.FILE] = SourceKind.FILE
    path: str
    format: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class DatabaseSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[SourceKind.DATABASE] = SourceKind.DATABASE
    provider: DatabaseProvider
    table_name: str | None = None
    data_source_id: str | None = None


class ApiSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[SourceKind.API] = SourceKind.API
    data_source_id: str | None = None


SourceDescriptor = Annotated[FileSource | DatabaseSource | ApiSource, Field(discriminator="kind")]

_descriptor_adapter: TypeAdapter[FileSource | DatabaseSource | ApiSource] = TypeAdapter(
    SourceDescriptor
)


def parse_source(raw: dict[str, Any] | BaseModel) -> FileSource | DatabaseSource | ApiSource:
    """Validate a raw source descriptor."""
    if isinstance(raw, FileSource | DatabaseSource | ApiSource):
        return raw
    try:
        return _descriptor_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid source descriptor",
            expected={"kind": ["FILE", "DATABASE", "API"]},
            errors=pydantic_errors(e),
        ) from e


class ConnectorFactory:
    """Builds connectors bound to engine settings."""

    def __init__(
        self,
        settings: Settings,
        manager: ConnectionManager,
        query_log_writer: QueryExecutionLogWriter | None = None,
        null_config: NullValueConfig | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings
        self.manager = manager
        self.query_log_writer = query_log_writer
        self.null_config = null_config or load_null_value_config(
            settings.config_path / "null_values.yaml"
        )
        self.http_transport = http_transport

    def create(
        self,
        source: FileSource | DatabaseSource | ApiSource,
        connection_config: dict[str, Any] | None = None,
        tenant_id: str = "",
    ) -> ConnectorBase:
        if isinstance(source, FileSource):
            return self.file(source)
        if isinstance(source, DatabaseSource):
            return self.database(source, connection_config or {}, tenant_id)
        return self.api(connection_config or {})

    def file(self, source: FileSource) -> FileConnector:
        return FileConnector(
            source.path,
            self.manager,
            max_rows=self.settings.max_query_rows,
            default_limit=self.settings.default_fetch_limit,
            file_format=source.format,
            format_options=source.options,
            null_config=self.null_config,
        )

    def database(
        self, source: DatabaseSource, connection_config: dict[str, Any], tenant_id: str = ""
    ) -> DatabaseConnector:
        return DatabaseConnector(
            source.provider,
            connection_config,
            max_rows=self.settings.max_query_rows,
            default_limit=self.settings.default_fetch_limit,
            query_timeout_seconds=self.settings.query_timeout_seconds,
            query_log_max_chars=self.settings.query_log_max_chars,
            query_log_writer=self.query_log_writer,
            tenant_id=tenant_id,
            data_source_id=source.data_source_id,
            table_name=source.table_name,
        )

    def api(self, connection_config: dict[str, Any]) -> ApiConnector:
        return ApiConnector(
            connection_config,
            max_rows=self.settings.max_query_rows,
            default_limit=self.settings.default_fetch_limit,
            null_config=self.null_config,
            transport=self.http_transport,
            manager=self.manager,
        )

    def dataset(self, loader: RecordsLoader) -> DatasetConnector:
        return DatasetConnector(
            loader,
            max_rows=self.settings.max_query_rows,
            default_limit=self.settings.default_fetch_limit,
            manager=self.manager,
        )
