"""Column mixins shared by the automation tables."""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from crmflow.shared.utils.generators import generate_cuid


class CuidMixin:
    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_cuid)


class TenantMixin:
    # Tenants are owned by the CRM, not this service: indexed, no FK.
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class SoftDeleteMixin:
    """deleted_at is null while the row is live; engine queries filter on it."""

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )


class MultiTenantModel(CuidMixin, TenantMixin, TimestampMixin):
    """id, tenant_id and timestamps."""


class SoftDeleteMultiTenantModel(MultiTenantModel, SoftDeleteMixin):
    pass
