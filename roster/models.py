from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from roster.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StaffRecord(Base):
    __tablename__ = "staff"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    weekend_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    employment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="Casual")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ScheduleSlotRecord(Base):
    __tablename__ = "schedule_slots"
    __table_args__ = (
        UniqueConstraint("account_id", "date_key", "staff_id", "time_slot", name="uq_schedule_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False)
    staff_id: Mapped[str] = mapped_column(String(64), nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    role_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role_code: Mapped[str] = mapped_column(String(16), nullable=False)
    role_color: Mapped[str] = mapped_column(String(16), nullable=False)


class StaffOrderRecord(Base):
    __tablename__ = "staff_order"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    staff_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class BusinessSettingsRecord(Base):
    __tablename__ = "business_settings"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rules_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class ShiftTemplateRecord(Base):
    __tablename__ = "shift_templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role_code: Mapped[str] = mapped_column(String(16), nullable=False)
    role_color: Mapped[str] = mapped_column(String(16), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class DailyRevenueRecord(Base):
    __tablename__ = "daily_revenue"
    __table_args__ = (
        UniqueConstraint("account_id", "date", name="uq_daily_revenue_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    revenue_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    projected_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    other_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
