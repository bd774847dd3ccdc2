# cityatlas/models/grant.py

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from cityatlas.db.base import Base


class Grant(Base):
    """
    Tenant-scoped role for a principal.

    Composite primary key (tenant_id, principal_id): a second row for the same
    pair cannot exist, so a role change is always an UPDATE of this row.
    Revocation deletes the row (no soft delete).
    """

    __tablename__ = "grants"
    __table_args__ = (
        CheckConstraint("role IN ('operator', 'admin')", name="role_is_tenant_role"),
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        primary_key=True,
    )
    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("principals.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )

    # operator | admin  (superuser access is implicit, never a row)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="operator")

    granted_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("principals.id", ondelete="SET NULL"),
        nullable=True,
    )
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
