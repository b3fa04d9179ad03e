"""Tenant-scoped snapshot loaders.

Each loader reads a fresh copy of one metadata record and returns a frozen
pydantic snapshot; nothing here is cached.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from reportstudio.core.connections import ConnectionManager
from reportstudio.core.models import (
    ColumnDescriptor,
    DatasetSnapshot,
    DataSourceSnapshot,
    SourceKind,
    SourceStatus,
    StepSnapshot,
    TransformationSnapshot,
)
from reportstudio.storage.models import DataSource, Dataset, Transformation


def _columns(raw: list[dict] | None) -> list[ColumnDescriptor]:
    return [ColumnDescriptor.model_validate(c) for c in raw or []]


def load_data_source_snapshot(
    session: Session, tenant_id: str, data_source_id: str
) -> DataSourceSnapshot | None:
    """Load a data source owned by the tenant."""
    stmt = select(DataSource).where(
        DataSource.data_source_id == data_source_id, DataSource.tenant_id == tenant_id
    )
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        return None
    return DataSourceSnapshot(
        id=row.data_source_id,
        tenant_id=row.tenant_id,
        name=row.name,
        kind=SourceKind(row.kind),
        provider=row.provider,
        encrypted_config=row.encrypted_config,
        status=SourceStatus(row.status),
    )


def load_dataset_snapshot(
    session: Session, tenant_id: str, dataset_id: str
) -> DatasetSnapshot | None:
    """Load a dataset owned by the tenant."""
    stmt = select(Dataset).where(Dataset.dataset_id == dataset_id, Dataset.tenant_id == tenant_id)
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        return None
    return DatasetSnapshot(
        id=row.dataset_id,
        tenant_id=row.tenant_id,
        name=row.name,
        file_path=row.file_path,
        data_source_id=row.data_source_id,
        transformation_id=row.transformation_id,
        table_name=row.table_name,
        source_options=row.source_options or {},
        columns=_columns(row.schema_json),
        declared_columns=_columns(row.declared_schema_json) or None,
        row_count=row.row_count,
        column_count=row.column_count,
    )


def load_transformation_snapshot(
    session: Session, tenant_id: str, transformation_id: str
) -> TransformationSnapshot | None:
    """Load a transformation and its steps."""
    stmt = select(Transformation).where(
        Transformation.transformation_id == transformation_id,
        Transformation.tenant_id == tenant_id,
    )
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        return None
    steps = [
        StepSnapshot(
            id=s.step_id,
            order=s.order,
            operator=s.operator,
            config=dict(s.config or {}),
            input_step_ids=list(s.input_step_ids or []),
            is_active=s.is_active,
        )
        for s in row.steps
    ]
    return TransformationSnapshot(
        id=row.transformation_id,
        tenant_id=row.tenant_id,
        name=row.name,
        input_dataset_id=row.input_dataset_id,
        output_dataset_id=row.output_dataset_id,
        steps=steps,
    )


class MetadataResolver(Protocol):
    """Read-only access to metadata snapshots, injected into the engine."""

    def get_dataset(self, tenant_id: str, dataset_id: str) -> DatasetSnapshot | None: ...

    def get_data_source(
        self, tenant_id: str, data_source_id: str
    ) -> DataSourceSnapshot | None: ...

    def get_transformation(
        self, tenant_id: str, transformation_id: str
    ) -> TransformationSnapshot | None: ...

    def transformations_reading(self, tenant_id: str, dataset_id: str) -> list[str]:
        """Transformations whose input is the dataset."""
        ...

    def datasets_derived_from(self, tenant_id: str, transformation_id: str) -> list[str]:
        """Datasets backed by, or written from, the transformation."""
        ...


class SqlMetadataResolver:
    """MetadataResolver over the SQLAlchemy metadata store."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    def get_dataset(self, tenant_id: str, dataset_id: str) -> DatasetSnapshot | None:
        with self.manager.session_scope() as session:
            return load_dataset_snapshot(session, tenant_id, dataset_id)

    def get_data_source(self, tenant_id: str, data_source_id: str) -> DataSourceSnapshot | None:
        with self.manager.session_scope() as session:
            return load_data_source_snapshot(session, tenant_id, data_source_id)

    def get_transformation(
        self, tenant_id: str, transformation_id: str
    ) -> TransformationSnapshot | None:
        with self.manager.session_scope() as session:
            return load_transformation_snapshot(session, tenant_id, transformation_id)

    def transformations_reading(self, tenant_id: str, dataset_id: str) -> list[str]:
        stmt = select(Transformation.transformation_id).where(
            Transformation.tenant_id == tenant_id,
            Transformation.input_dataset_id == dataset_id,
        )
        with self.manager.session_scope() as session:
            return sorted(session.execute(stmt).scalars())

    def datasets_derived_from(self, tenant_id: str, transformation_id: str) -> list[str]:
        by_reference = select(Dataset.dataset_id).where(
            Dataset.tenant_id == tenant_id, Dataset.transformation_id == transformation_id
        )
        by_output = select(Transformation.output_dataset_id).where(
            Transformation.tenant_id == tenant_id,
            Transformation.transformation_id == transformation_id,
            Transformation.output_dataset_id.is_not(None),
        )
        with self.manager.session_scope() as session:
            ids = set(session.execute(by_reference).scalars())
            ids.update(session.execute(by_output).scalars())
        return sorted(ids)
