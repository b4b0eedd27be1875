from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, Enum, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import PeriodType


# field id -> column attribute for the stored inputs
TARGET_INPUT_COLUMNS: dict[str, str] = {
    "revenue": "revenue",
    "avgJobSize": "avg_job_size",
    "appointmentRate": "appointment_rate",
    "showRate": "show_rate",
    "closeRate": "close_rate",
    "com": "com",
}


class TargetRecord(Base):
    __tablename__ = "targets"
    __table_args__ = (
        UniqueConstraint("account_id", "start_date", "end_date", name="uq_targets_account_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    query_type: Mapped[PeriodType] = mapped_column(
        Enum(PeriodType, name="period_type"),
        nullable=False,
    )

    revenue: Mapped[Decimal] = mapped_column(Numeric(24, 2), default=0, nullable=False)
    avg_job_size: Mapped[Decimal] = mapped_column(Numeric(24, 2), default=0, nullable=False)
    appointment_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=0, nullable=False)
    show_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=0, nullable=False)
    close_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=0, nullable=False)
    com: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=0, nullable=False)
    budget: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    derived_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
