"""Immutable snapshots of stored metadata.

The engine never holds ORM objects: callers load a fresh snapshot per
operation and pass it in. All snapshots are frozen.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reportstudio.core.models.base import ColumnDescriptor, SourceKind, SourceStatus


class DataSourceSnapshot(BaseModel):
    """A credentialed connection to an external or uploaded origin.

    ``encrypted_config`` is opaque; it is only decrypted just-in-time by the
    injected credential decryptor and never stored in plaintext.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    name: str
    kind: SourceKind
    provider: str | None = None
    encrypted_config: str | None = None
    status: SourceStatus = SourceStatus.ACTIVE


class DatasetSnapshot(BaseModel):
    """A named tabular entity over a file, a data source table or a transformation."""

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    name: str

    # Exactly one reference is set
    file_path: str | None = None
    data_source_id: str | None = None
    transformation_id: str | None = None

    # Table or query selector within the data source
    table_name: str | None = None
    source_options: dict[str, Any] = Field(default_factory=dict)

    columns: list[ColumnDescriptor] = Field(default_factory=list)
    declared_columns: list[ColumnDescriptor] | None = None
    row_count: int | None = None
    column_count: int | None = None

    @model_validator(mode="after")
    def _exactly_one_reference(self) -> DatasetSnapshot:
        refs = [self.file_path, self.data_source_id, self.transformation_id]
        if sum(r is not None for r in refs) != 1:
            raise ValueError(
                "exactly one of file_path, data_source_id, transformation_id must be set"
            )
        return self

    @property
    def kind(self) -> SourceKind:
        if self.file_path is not None:
            return SourceKind.FILE
        if self.data_source_id is not None:
            return SourceKind.DATABASE
        return SourceKind.DATASET

    @property
    def effective_columns(self) -> list[ColumnDescriptor]:
        """Declared schema when present, otherwise the inferred one."""
        return list(self.declared_columns) if self.declared_columns else list(self.columns)


class StepSnapshot(BaseModel):
    """One step of a transformation."""

    model_config = ConfigDict(frozen=True)

    id: str
    order: int
    operator: str
    config: dict[str, Any] = Field(default_factory=dict)
    input_step_ids: list[str] = Field(default_factory=list)
    is_active: bool = True


class TransformationSnapshot(BaseModel):
    """A transformation over one input dataset with its steps."""

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    name: str
    input_dataset_id: str
    output_dataset_id: str | None = None
    steps: list[StepSnapshot] = Field(default_factory=list)

    @property
    def ordered_steps(self) -> list[StepSnapshot]:
        return sorted(self.steps, key=lambda s: s.order)

    @property
    def uses_dag(self) -> bool:
        """Whether any step declares explicit inputs."""
        return any(s.input_step_ids for s in self.steps)
