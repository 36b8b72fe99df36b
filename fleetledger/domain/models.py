from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Resource(Base):
    __tablename__ = "resources"
    __table_args__ = (
        Index("ix_resources_tenant_kind", "tenant_id", "kind"),
        Index("ix_resources_owner_id", "owner_id"),
        # Speed up containment and path queries on orchestrator-written conditions.
        Index("ix_resources_status_conditions", "status_conditions", postgresql_using="gin"),
        Index("ix_resources_labels", "labels", postgresql_using="gin"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String)
    # Kind names come from the resource kind registry (Cluster, NodePool, ...).
    kind: Mapped[str] = mapped_column(String(63))
    name: Mapped[str] = mapped_column(String(63))
    # Opaque desired state; never interpreted or filtered on by this service.
    spec: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    labels: Mapped[dict[str, str] | None] = mapped_column(JSONB, nullable=True)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    owner_id: Mapped[str | None] = mapped_column(String, nullable=True)
    owner_kind: Mapped[str | None] = mapped_column(String(63), nullable=True)
    # Written by the orchestrator; read-only for this service.
    status_conditions: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=False, default="system")
    updated_by: Mapped[str] = mapped_column(String, nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AdapterStatus(Base):
    __tablename__ = "adapter_statuses"
    __table_args__ = (
        # One live row per (resource, adapter); soft-deleted rows free the key for recreation.
        Index(
            "uq_adapter_statuses_resource_adapter",
            "resource_type",
            "resource_id",
            "adapter",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("ix_adapter_statuses_resource", "resource_type", "resource_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Polymorphic owner reference validated against the kind registry, not a foreign key.
    resource_type: Mapped[str] = mapped_column(String(63))
    resource_id: Mapped[str] = mapped_column(String(255))
    adapter: Mapped[str] = mapped_column(String(255))
    observed_generation: Mapped[int] = mapped_column(Integer, nullable=False)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    # `metadata` is reserved on declarative classes.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    created_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_report_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
