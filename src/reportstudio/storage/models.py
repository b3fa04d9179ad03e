"""Metadata entity models (data sources, datasets, transformations, query log).

The engine itself only reads these through snapshot loaders
(``reportstudio.storage.snapshots``); the surrounding CRUD layer owns writes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reportstudio.storage.base import Base


class DataSource(Base):
    """Configured, credentialed connection (file upload, database, API)."""

    __tablename__ = "data_sources"

    data_source_id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: str(uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)  # FILE, DATABASE, API
    provider: Mapped[str | None] = mapped_column(String)  # POSTGRESQL, MYSQL, ...
    # Opaque blob, decrypted just-in-time by the credential decryptor
    encrypted_config: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    datasets: Mapped[list[Dataset]] = relationship(back_populates="data_source")


class Dataset(Base):
    """Named tabular entity.

    Exactly one of file_path / data_source_id / transformation_id is set.
    """

    __tablename__ = "datasets"
    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN file_path IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN data_source_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN transformation_id IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="exactly_one_reference",
        ),
        UniqueConstraint("tenant_id", "name", name="uq_dataset_tenant_name"),
    )

    dataset_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)

    file_path: Mapped[str | None] = mapped_column(String)
    data_source_id: Mapped[str | None] = mapped_column(ForeignKey("data_sources.data_source_id"))
    # Producing transformation (not a FK: transformations reference datasets)
    transformation_id: Mapped[str | None] = mapped_column(String, index=True)

    table_name: Mapped[str | None] = mapped_column(String)
    source_options: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Ordered list of {"name", "type", "nullable"}
    schema_json: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    declared_schema_json: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    row_count: Mapped[int | None] = mapped_column(Integer)
    column_count: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(UTC)
    )

    data_source: Mapped[DataSource | None] = relationship(back_populates="datasets")


class Transformation(Base):
    """User-authored pipeline over one input dataset."""

    __tablename__ = "transformations"

    transformation_id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: str(uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    input_dataset_id: Mapped[str] = mapped_column(
        ForeignKey("datasets.dataset_id"), nullable=False
    )
    output_dataset_id: Mapped[str | None] = mapped_column(ForeignKey("datasets.dataset_id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    steps: Mapped[list[TransformationStep]] = relationship(
        back_populates="transformation",
        cascade="all, delete-orphan",
        order_by="TransformationStep.order",
    )


class TransformationStep(Base):
    """One operator step of a transformation."""

    __tablename__ = "transformation_steps"
    __table_args__ = (
        UniqueConstraint("transformation_id", "order", name="uq_step_order"),
    )

    step_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    transformation_id: Mapped[str] = mapped_column(
        ForeignKey("transformations.transformation_id", ondelete="CASCADE"), nullable=False
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    operator: Mapped[str] = mapped_column(String, nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    input_step_ids: Mapped[list[str] | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    transformation: Mapped[Transformation] = relationship(back_populates="steps")


class QueryExecutionLog(Base):
    """Record of a raw query execution (latency, row count, outcome)."""

    __tablename__ = "query_execution_logs"
    __table_args__ = (Index("idx_query_log_tenant_time", "tenant_id", "executed_at"),)

    log_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String)
    data_source_id: Mapped[str | None] = mapped_column(String)
    provider: Mapped[str | None] = mapped_column(String)
    # Truncated copy of the query text
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    row_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latency_ms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error: Mapped[str | None] = mapped_column(Text)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(UTC)
    )
