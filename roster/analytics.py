from __future__ import annotations

from collections import defaultdict
import datetime as dt
from datetime import date
from typing import Iterable, Literal

from pydantic import BaseModel, Field, computed_field

from roster.schemas import BusinessRules, DailyRevenue, Role, Staff
from roster.slots import SLOT_MINUTES, date_key as format_date_key, decode, encode, parse_date_key, slot_end, time_to_minutes
from roster.store import ScheduleMap

SLOT_HOURS = SLOT_MINUTES / 60
OVERSTAFFED_MARGIN = 3


class LaborTotals(BaseModel):
    hours: float = 0
    cost: float = 0

    def add(self, hours: float, cost: float) -> None:
        self.hours += hours
        self.cost += cost

    @property
    def cost_per_hour(self) -> float:
        return self.cost / self.hours if self.hours > 0 else 0


class StaffBreakdown(LaborTotals):
    staff_id: str
    name: str


class RoleBreakdown(LaborTotals):
    role_id: str
    name: str
    code: str
    color: str


class DayBreakdown(LaborTotals):
    date: dt.date
    is_weekend: bool


class WeekSummary(BaseModel):
    total: LaborTotals
    staff: list[StaffBreakdown]
    roles: list[RoleBreakdown]
    days: list[DayBreakdown]
    weekend: LaborTotals
    weekday: LaborTotals
    peak: LaborTotals
    off_peak: LaborTotals
    peak_cost_per_hour: float
    off_peak_cost_per_hour: float
    peak_headcount: dict[str, dict[str, int]]
    most_expensive_day: date | None = None
    least_expensive_day: date | None = None


class CoverageSlot(BaseModel):
    date: dt.date
    time_slot: str
    staff_count: int
    required: int
    severity: Literal["critical", "warning", "info"]


class CoverageReport(BaseModel):
    critical: list[CoverageSlot] = Field(default_factory=list)
    understaffed: list[CoverageSlot] = Field(default_factory=list)
    overstaffed: list[CoverageSlot] = Field(default_factory=list)
    operating_slots: int = 0

    @computed_field
    @property
    def well_covered(self) -> int:
        return self.operating_slots - len(self.critical) - len(self.understaffed)


class Utilization(BaseModel):
    staff_id: str
    name: str
    scheduled_slots: int
    possible_slots: int
    rate: float


class ShiftBlock(BaseModel):
    start_time: str
    end_time: str
    role_id: str
    role_code: str
    role_color: str
    slot_count: int

    @computed_field
    @property
    def hours(self) -> float:
        return self.slot_count * SLOT_HOURS


class RevenueDay(BaseModel):
    date: dt.date
    labor_cost: float
    projected_revenue: float
    other_revenue: float
    total_revenue: float
    labor_percentage: float | None
    band: Literal["none", "ok", "warning", "high", "critical"]
    notes: str = ""


class RevenueReport(BaseModel):
    days: list[RevenueDay]
    labor_cost: float
    total_revenue: float
    days_with_revenue: int
    labor_percentage: float | None
    target_labor_percentage: float


class TimesheetRow(BaseModel):
    staff_id: str
    name: str
    employment_type: str
    days: list[LaborTotals]
    total: LaborTotals


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def slot_cost(staff: Staff, day: date) -> float:
    return SLOT_HOURS * staff.rate_for(day)


def _index_staff(staff: Iterable[Staff]) -> dict[str, Staff]:
    return {s.id: s for s in staff}


def _slots_by_day(schedule: ScheduleMap, date_keys: set[str]):
    for key, assignment in schedule.items():
        parts = decode(key)
        if parts.date_key in date_keys:
            yield parts, assignment


def staff_day_stats(schedule: ScheduleMap, staff: Staff, date_key: str) -> LaborTotals:
    prefix = encode(date_key, staff.id, "")
    slots = sum(1 for key in schedule if key.startswith(prefix))
    hours = slots * SLOT_HOURS
    return LaborTotals(hours=hours, cost=hours * staff.rate_for(parse_date_key(date_key)))


def staff_week_stats(schedule: ScheduleMap, staff: Staff, dates: Iterable[date]) -> LaborTotals:
    totals = LaborTotals()
    for day in dates:
        stats = staff_day_stats(schedule, staff, format_date_key(day))
        totals.add(stats.hours, stats.cost)
    return totals


def day_stats(schedule: ScheduleMap, staff: Iterable[Staff], date_key: str) -> LaborTotals:
    totals = LaborTotals()
    for member in staff:
        stats = staff_day_stats(schedule, member, date_key)
        totals.add(stats.hours, stats.cost)
    return totals


def week_summary(
    schedule: ScheduleMap,
    staff: list[Staff],
    roles: list[Role],
    dates: list[date],
    rules: BusinessRules,
) -> WeekSummary:
    """Labor hours and cost for the dates in view.

    Archived staff still count: their past assignments carry real cost.
    """
    staff_by_id = _index_staff(staff)
    by_staff = {s.id: StaffBreakdown(staff_id=s.id, name=s.name) for s in staff}
    by_role = {r.id: RoleBreakdown(role_id=r.id, name=r.name, code=r.code, color=r.color) for r in roles}
    by_day = {format_date_key(d): DayBreakdown(date=d, is_weekend=is_weekend(d)) for d in dates}
    total, weekend, weekday, peak, off_peak = (LaborTotals() for _ in range(5))
    peak_headcount: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for parts, assignment in _slots_by_day(schedule, set(by_day)):
        member = staff_by_id.get(parts.staff_id)
        if member is None:
            continue
        day = by_day[parts.date_key]
        cost = slot_cost(member, day.date)
        total.add(SLOT_HOURS, cost)
        day.add(SLOT_HOURS, cost)
        by_staff[member.id].add(SLOT_HOURS, cost)
        (weekend if day.is_weekend else weekday).add(SLOT_HOURS, cost)
        if rules.peak_hours.contains(parts.time_slot):
            peak.add(SLOT_HOURS, cost)
            peak_headcount[parts.date_key][parts.time_slot] += 1
        else:
            off_peak.add(SLOT_HOURS, cost)
        if assignment.role_id not in by_role:
            # Role removed from the catalog after it was painted.
            by_role[assignment.role_id] = RoleBreakdown(
                role_id=assignment.role_id, name=assignment.role_code, code=assignment.role_code, color=assignment.role_color
            )
        by_role[assignment.role_id].add(SLOT_HOURS, cost)

    days = list(by_day.values())
    costed = [d for d in days if d.cost > 0]
    return WeekSummary(
        total=total,
        staff=[s for s in by_staff.values() if s.hours > 0],
        roles=[r for r in by_role.values() if r.hours > 0],
        days=days,
        weekend=weekend,
        weekday=weekday,
        peak=peak,
        off_peak=off_peak,
        peak_cost_per_hour=peak.cost_per_hour,
        off_peak_cost_per_hour=off_peak.cost_per_hour,
        peak_headcount={d: dict(slots) for d, slots in peak_headcount.items()},
        most_expensive_day=max(costed, key=lambda d: d.cost).date if costed else None,
        least_expensive_day=min(costed, key=lambda d: d.cost).date if costed else None,
    )


def coverage_report(
    schedule: ScheduleMap,
    staff: list[Staff],
    dates: list[date],
    rules: BusinessRules,
    time_slots: list[str],
) -> CoverageReport:
    """Classify every operating slot in view by active headcount.

    Slots outside the weekday's operating hours are skipped entirely.
    """
    active = [s for s in staff if s.active]
    report = CoverageReport()
    for day in dates:
        date_key = format_date_key(day)
        for slot in time_slots:
            if not rules.is_open(day, slot):
                continue
            report.operating_slots += 1
            count = sum(1 for s in active if encode(date_key, s.id, slot) in schedule)
            required = rules.minimum_for(slot)
            if count == 0:
                report.critical.append(CoverageSlot(date=day, time_slot=slot, staff_count=0, required=required, severity="critical"))
            elif count < required:
                report.understaffed.append(CoverageSlot(date=day, time_slot=slot, staff_count=count, required=required, severity="warning"))
            elif count > required + OVERSTAFFED_MARGIN:
                report.overstaffed.append(CoverageSlot(date=day, time_slot=slot, staff_count=count, required=required, severity="info"))
    return report


def utilization(schedule: ScheduleMap, staff: list[Staff], dates: list[date], time_slots: list[str]) -> list[Utilization]:
    """Share of the visible grid each staff member is scheduled for; slots outside ``time_slots`` are ignored."""
    date_keys = {format_date_key(d) for d in dates}
    visible = set(time_slots)
    scheduled: dict[str, int] = defaultdict(int)
    for parts, _ in _slots_by_day(schedule, date_keys):
        if parts.time_slot in visible:
            scheduled[parts.staff_id] += 1
    possible = len(dates) * len(visible)
    return [
        Utilization(
            staff_id=s.id,
            name=s.name,
            scheduled_slots=scheduled[s.id],
            possible_slots=possible,
            rate=(scheduled[s.id] / possible * 100) if possible else 0,
        )
        for s in staff
    ]


def labor_percentage(labor_cost: float, revenue: DailyRevenue | None) -> float | None:
    if revenue is None or not revenue.total:
        return None
    return labor_cost / revenue.total * 100


def labor_band(percentage: float | None, target: float) -> Literal["none", "ok", "warning", "high", "critical"]:
    if percentage is None:
        return "none"
    if percentage <= target:
        return "ok"
    if percentage <= target + 5:
        return "warning"
    if percentage <= target + 10:
        return "high"
    return "critical"


def revenue_report(
    schedule: ScheduleMap,
    staff: list[Staff],
    dates: list[date],
    revenue: dict[str, DailyRevenue],
    rules: BusinessRules,
) -> RevenueReport:
    days: list[RevenueDay] = []
    for day in dates:
        date_key = format_date_key(day)
        cost = day_stats(schedule, staff, date_key).cost
        entry = revenue.get(date_key)
        percentage = labor_percentage(cost, entry)
        days.append(
            RevenueDay(
                date=day,
                labor_cost=cost,
                projected_revenue=entry.projected_revenue if entry else 0,
                other_revenue=entry.other_revenue if entry else 0,
                total_revenue=entry.total if entry else 0,
                labor_percentage=percentage,
                band=labor_band(percentage, rules.target_labor_percentage),
                notes=entry.notes if entry else "",
            )
        )
    labor_cost = sum(d.labor_cost for d in days)
    total_revenue = sum(d.total_revenue for d in days)
    return RevenueReport(
        days=days,
        labor_cost=labor_cost,
        total_revenue=total_revenue,
        days_with_revenue=sum(1 for d in days if d.total_revenue > 0),
        labor_percentage=labor_cost / total_revenue * 100 if total_revenue > 0 else None,
        target_labor_percentage=rules.target_labor_percentage,
    )


def shift_blocks(schedule: ScheduleMap, staff_id: str, date_key: str) -> list[ShiftBlock]:
    """Group one staff member's day into contiguous same-role shifts."""
    prefix = encode(date_key, staff_id, "")
    slots = sorted((decode(key).time_slot, schedule[key]) for key in schedule if key.startswith(prefix))
    blocks: list[ShiftBlock] = []
    for slot, assignment in slots:
        last = blocks[-1] if blocks else None
        if last and last.role_id == assignment.role_id and last.end_time == slot:
            last.end_time = slot_end(slot)
            last.slot_count += 1
            continue
        blocks.append(
            ShiftBlock(
                start_time=slot,
                end_time=slot_end(slot),
                role_id=assignment.role_id,
                role_code=assignment.role_code,
                role_color=assignment.role_color,
                slot_count=1,
            )
        )
    return blocks


def average_shift_length(schedule: ScheduleMap, staff: list[Staff], dates: list[date]) -> float:
    """Mean length in hours of contiguous worked stretches, ignoring role changes."""
    lengths: list[float] = []
    for day in dates:
        date_key = format_date_key(day)
        for member in staff:
            prefix = encode(date_key, member.id, "")
            minutes = sorted(time_to_minutes(decode(key).time_slot) for key in schedule if key.startswith(prefix))
            run = 0
            for i, value in enumerate(minutes):
                if i and value - minutes[i - 1] != SLOT_MINUTES:
                    lengths.append(run * SLOT_HOURS)
                    run = 0
                run += 1
            if run:
                lengths.append(run * SLOT_HOURS)
    return sum(lengths) / len(lengths) if lengths else 0


def timesheet(schedule: ScheduleMap, staff: list[Staff], dates: list[date]) -> list[TimesheetRow]:
    rows: list[TimesheetRow] = []
    for member in staff:
        days = [staff_day_stats(schedule, member, format_date_key(d)) for d in dates]
        total = LaborTotals(hours=sum(d.hours for d in days), cost=sum(d.cost for d in days))
        rows.append(TimesheetRow(staff_id=member.id, name=member.name, employment_type=member.employment_type, days=days, total=total))
    return rows
