"""Pydantic schemas for API request/response models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from reportstudio.core.models import ColumnDescriptor, StepSnapshot

# --- Rows ---


class RowsRequest(BaseModel):
    """Rows as dict records, or positional rows with column names."""

    rows: list[dict[str, Any]] | list[list[Any]]
    columns: list[str] | None = None


# --- Statistics ---


class FunctionRequest(BaseModel):
    data: Any
    options: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(BaseModel):
    function: str
    result: Any


class FunctionInfo(BaseModel):
    name: str
    description: str
    payload: dict[str, Any]


class FunctionListResponse(BaseModel):
    functions: list[FunctionInfo]


# --- Schema / profiling ---


class SchemaResponse(BaseModel):
    columns: list[ColumnDescriptor]


class ProfileRequest(RowsRequest):
    """Rows to profile, with an optional schema and declared schema."""

    model_config = ConfigDict(populate_by_name=True)

    schema_columns: list[ColumnDescriptor] | None = Field(default=None, alias="schema")
    declared_schema: list[ColumnDescriptor] | None = None
    sample_size: int | None = Field(default=None, ge=0)


# --- Transformations ---


class TransformRequest(BaseModel):
    """One operator over input rows."""

    operator: str
    rows: list[dict[str, Any]]
    config: dict[str, Any] = Field(default_factory=dict)
    secondary: list[dict[str, Any]] | None = Field(
        default=None, description="Second input for join/union"
    )


class PipelinePreviewRequest(BaseModel):
    """An unsaved pipeline over inline rows."""

    steps: list[StepSnapshot]
    rows: list[dict[str, Any]]
    preview_rows: int | None = Field(default=None, ge=1)


# --- Datasets ---


class InvalidateResponse(BaseModel):
    dataset_id: str
    removed: int


# --- Raw queries ---


class QueryValidateRequest(BaseModel):
    sql: str


class QueryValidateResponse(BaseModel):
    allowed: bool
    keyword: str | None = None
    message: str | None = None


class QueryRequest(BaseModel):
    """Schema for raw read-only query execution."""

    sql: str = Field(description="SQL query to execute (read-only)")
    limit: int | None = Field(default=None, ge=1, description="Maximum rows to return")
