from __future__ import annotations

import datetime as dt
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from roster.slots import SEPARATOR, canonical_slot, minutes_to_time, time_to_minutes

DayKey = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
DAY_KEYS: list[DayKey] = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
ERASER_ROLE_ID = "eraser"


class Role(BaseModel):
    id: str
    name: str
    code: str
    color: str


DEFAULT_ROLES = [
    Role(id="barista", name="Barista", code="B", color="#F97316"),
    Role(id="foh", name="Front of House", code="FOH", color="#2563EB"),
    Role(id="boh", name="Back of House", code="BOH", color="#FB923C"),
    Role(id="chef", name="Chef", code="C", color="#EA580C"),
    Role(id="prep", name="Prep", code="P", color="#1D4ED8"),
    Role(id="assembler", name="Assembler", code="A", color="#3B82F6"),
    Role(id="office", name="Office", code="O", color="#8B5CF6"),
]
ERASER = Role(id=ERASER_ROLE_ID, name="Eraser", code="", color="#EF4444")


class Staff(BaseModel):
    id: str
    name: str
    hourly_rate: float = Field(ge=0)
    weekend_rate: float | None = Field(default=None, ge=0)
    employment_type: str = "Casual"
    active: bool = True

    @field_validator("id")
    @classmethod
    def id_has_no_separator(cls, value: str) -> str:
        if not value or SEPARATOR in value:
            raise ValueError(f"Staff id must be non-empty and must not contain {SEPARATOR!r}")
        return value

    def rate_for(self, day: date) -> float:
        if day.weekday() >= 5 and self.weekend_rate:
            return self.weekend_rate
        return self.hourly_rate


class StaffCreate(BaseModel):
    name: str
    hourly_rate: float = Field(ge=0)
    weekend_rate: float | None = Field(default=None, ge=0)
    employment_type: str = "Casual"


class ShiftTemplate(BaseModel):
    id: str
    name: str
    role_id: str
    role_code: str
    role_color: str
    start_time: str
    end_time: str

    @model_validator(mode="after")
    def validate_range(self) -> ShiftTemplate:
        canonical_slot(self.start_time)
        if time_to_minutes(self.end_time) <= time_to_minutes(self.start_time):
            raise ValueError("Template end_time must be after start_time")
        return self


def _clock_time(value: str) -> str:
    return minutes_to_time(time_to_minutes(value))


class HoursRange(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _clock_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> HoursRange:
        if time_to_minutes(self.end) <= time_to_minutes(self.start):
            raise ValueError("end must be after start")
        return self

    def contains(self, time_slot: str) -> bool:
        return self.start <= time_slot < self.end


class DayHours(BaseModel):
    open: str
    close: str
    closed: bool = False

    @field_validator("open", "close")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _clock_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> DayHours:
        if not self.closed and time_to_minutes(self.close) <= time_to_minutes(self.open):
            raise ValueError("close must be after open unless the day is closed")
        return self

    def contains(self, time_slot: str) -> bool:
        return not self.closed and self.open <= time_slot < self.close


def _default_operating_hours() -> dict[str, DayHours]:
    weekday = {"open": "06:30", "close": "15:45"}
    weekend = {"open": "07:00", "close": "15:15"}
    return {key: DayHours(**(weekend if key in ("sat", "sun") else weekday)) for key in DAY_KEYS}


class BusinessRules(BaseModel):
    business_name: str = "Recess"
    operating_hours: dict[DayKey, DayHours] = Field(default_factory=_default_operating_hours)
    min_staff_coverage: int = Field(default=2, ge=0)
    peak_hours: HoursRange = Field(default_factory=lambda: HoursRange(start="12:00", end="14:00"))
    min_peak_staff_coverage: int = Field(default=3, ge=0)
    currency: str = "$"
    timezone: str = "Australia/Sydney"
    target_labor_percentage: float = Field(default=30, ge=0)
    roles: list[Role] = Field(default_factory=lambda: list(DEFAULT_ROLES))

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, roles: list[Role]) -> list[Role]:
        ids = [role.id for role in roles]
        if any(not role_id for role_id in ids) or len(set(ids)) != len(ids):
            raise ValueError("Role ids must be non-empty and unique")
        if ERASER_ROLE_ID in ids:
            raise ValueError(f"{ERASER_ROLE_ID!r} is reserved")
        return roles

    def role_for(self, role_id: str) -> Role | None:
        return next((role for role in self.roles if role.id == role_id), None)

    def hours_for(self, day: date) -> DayHours:
        return self.operating_hours.get(DAY_KEYS[day.weekday()], DayHours(open="00:00", close="00:00", closed=True))

    def is_open(self, day: date, time_slot: str) -> bool:
        return self.hours_for(day).contains(time_slot)

    def minimum_for(self, time_slot: str) -> int:
        return self.min_peak_staff_coverage if self.peak_hours.contains(time_slot) else self.min_staff_coverage


class DailyRevenue(BaseModel):
    date: dt.date
    projected_revenue: float = 0
    other_revenue: float = 0
    notes: str = ""

    @property
    def total(self) -> float:
        return (self.projected_revenue or 0) + (self.other_revenue or 0)


class RevenueUpdate(BaseModel):
    projected_revenue: float = 0
    other_revenue: float = 0
    notes: str = ""


class AssignmentIn(BaseModel):
    roleId: str
    roleCode: str
    roleColor: str


class ScheduleDeltaRequest(BaseModel):
    desired: dict[str, AssignmentIn]
    baseline: dict[str, AssignmentIn] = Field(default_factory=dict)


class ScheduleDeltaOut(BaseModel):
    upserted: int
    deleted: int
