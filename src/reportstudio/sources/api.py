"""Connector for HTTP JSON endpoints."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field, HttpUrl
from pydantic import ValidationError as PydanticValidationError

from reportstudio.core.connections import ConnectionManager
from reportstudio.core.errors import QueryExecutionError, SourceConnectionError, ValidationError
from reportstudio.core.logging import get_logger
from reportstudio.core.models import SourceKind
from reportstudio.core.relations import relation_cursor
from reportstudio.sources.base import (
    ConnectorBase,
    FetchOptions,
    FetchResult,
    pydantic_errors,
)
from reportstudio.sources.file.parser import extract_records, records_to_table
from reportstudio.sources.filtering import apply_fetch_options
from reportstudio.sources.null_values import NullValueConfig, load_null_value_config

logger = get_logger(__name__)


class ApiSourceConfig(BaseModel):
    """Decrypted descriptor of an API source."""

    url: HttpUrl
    method: str = Field(default="GET", pattern="^(GET|POST)$")
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: dict[str, Any] | None = None
    records_path: str | None = None
    timeout_seconds: float = 30.0


class ApiConnector(ConnectorBase):
    """Requests the endpoint, flattens the JSON response, applies options in DuckDB."""

    kind = SourceKind.API

    def __init__(
        self,
        connection_config: dict[str, Any],
        max_rows: int,
        default_limit: int,
        null_config: NullValueConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        manager: ConnectionManager | None = None,
    ):
        try:
            self.config = ApiSourceConfig.model_validate(connection_config)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid API source configuration",
                expected=ApiSourceConfig.model_json_schema()["properties"],
                errors=pydantic_errors(e),
            ) from e
        self.max_rows = max_rows
        self.default_limit = default_limit
        self.null_config = null_config or load_null_value_config()
        self._transport = transport
        self.manager = manager

    def _request(self) -> Any:
        cfg = self.config
        try:
            with httpx.Client(timeout=cfg.timeout_seconds, transport=self._transport) as client:
                response = client.request(
                    cfg.method,
                    str(cfg.url),
                    headers=cfg.headers,
                    params=cfg.params,
                    json=cfg.body if cfg.method == "POST" else None,
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "api_source_http_error",
                host=cfg.url.host,
                status_code=e.response.status_code,
            )
            raise SourceConnectionError(
                "Data source returned an error", {"status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            logger.warning("api_source_unreachable", host=cfg.url.host, error=str(e))
            raise SourceConnectionError("Could not connect to data source") from e
        except ValueError as e:
            raise QueryExecutionError("Data source did not return JSON") from e

    def fetch(self, options: FetchOptions) -> FetchResult:
        payload = self._request()
        try:
            records = extract_records(payload, self.config.records_path)
        except ValueError as e:
            raise ValidationError(
                str(e), expected={"records_path": "dot-separated key path"}
            ) from e
        table = records_to_table(records, self.null_config)
        with relation_cursor(self.manager) as cursor:
            return apply_fetch_options(
                table.records,
                options,
                max_rows=self.max_rows,
                default_limit=self.default_limit,
                columns=table.columns,
                cursor=cursor,
            )
