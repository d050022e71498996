import uuid
from enum import StrEnum

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from paygsite.infrastructure.db.base import Base


class TenantStatus(StrEnum):
    ONBOARDING = "onboarding"
    BUILDING = "building"
    PENDING_REVIEW = "pending_review"
    LIVE = "live"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class Tenant(Base):
    __tablename__ = "tenants"
    __table_args__ = (
        CheckConstraint(
            "status IN ('onboarding', 'building', 'pending_review', 'live', 'suspended', 'cancelled')",
            name="ck_tenants_status_values",
        ),
        CheckConstraint("plan_pages IN (1, 5, 10)", name="ck_tenants_plan_pages_values"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TenantStatus.ONBOARDING.value)
    plan_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
