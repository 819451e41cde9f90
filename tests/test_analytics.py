from datetime import date

import pytest
from pydantic import ValidationError

from roster.analytics import (
    average_shift_length,
    coverage_report,
    labor_band,
    labor_percentage,
    revenue_report,
    shift_blocks,
    timesheet,
    utilization,
    week_summary,
)
from roster.schemas import DEFAULT_ROLES, ERASER, BusinessRules, DailyRevenue, DayHours, HoursRange, Staff
from roster.slots import day_slots, encode
from roster.store import Assignment

TUESDAY = date(2025, 3, 4)
SATURDAY = date(2025, 3, 8)
SUNDAY = date(2025, 3, 9)
BARISTA = Assignment("barista", "B", "#F97316")
FOH = Assignment("foh", "FOH", "#2563EB")


def staff(staff_id="s1", **kwargs):
    values = {"name": staff_id.upper(), "hourly_rate": 20, "weekend_rate": 25}
    values.update(kwargs)
    return Staff(id=staff_id, **values)


def hour_of(day, staff_id="s1", start_hour=9, assignment=BARISTA):
    date_key = day.isoformat()
    return {encode(date_key, staff_id, f"{start_hour:02d}:{m:02d}"): assignment for m in (0, 15, 30, 45)}


def test_weekend_rate_applies_on_saturday():
    members = [staff()]
    saturday = week_summary(hour_of(SATURDAY), members, DEFAULT_ROLES, [SATURDAY], BusinessRules())
    tuesday = week_summary(hour_of(TUESDAY), members, DEFAULT_ROLES, [TUESDAY], BusinessRules())
    assert saturday.total.hours == 1
    assert saturday.total.cost == pytest.approx(25.0)
    assert tuesday.total.cost == pytest.approx(20.0)
    assert saturday.weekend.cost == pytest.approx(25.0)
    assert tuesday.weekday.cost == pytest.approx(20.0)


def test_missing_weekend_rate_falls_back_to_hourly():
    summary = week_summary(hour_of(SATURDAY), [staff(weekend_rate=None)], DEFAULT_ROLES, [SATURDAY], BusinessRules())
    assert summary.total.cost == pytest.approx(20.0)


def test_week_summary_breakdowns():
    schedule = {**hour_of(TUESDAY), **hour_of(TUESDAY, start_hour=12, assignment=FOH), **hour_of(SATURDAY, staff_id="s2")}
    members = [staff(), staff("s2", hourly_rate=30, weekend_rate=None, active=False)]
    dates = [TUESDAY, SATURDAY]
    summary = week_summary(schedule, members, DEFAULT_ROLES, dates, BusinessRules())

    assert summary.total.hours == 3
    assert summary.total.cost == pytest.approx(70.0)
    # archived staff keep their cost
    assert {s.staff_id for s in summary.staff} == {"s1", "s2"}
    assert {r.role_id: r.hours for r in summary.roles} == {"barista": 2, "foh": 1}
    assert summary.peak.hours == 1
    assert summary.peak.cost_per_hour == pytest.approx(20.0)
    assert summary.peak_headcount["2025-03-04"]["12:00"] == 1
    assert summary.most_expensive_day == TUESDAY
    assert summary.least_expensive_day == SATURDAY
    assert [d.is_weekend for d in summary.days] == [False, True]


def test_coverage_ignores_closed_slots():
    rules = BusinessRules()
    rules.operating_hours["sun"] = DayHours(open="07:00", close="15:15", closed=True)
    report = coverage_report({}, [staff()], [TUESDAY, SUNDAY], rules, ["06:00", "06:15", "06:30"])
    assert report.operating_slots == 1
    assert [(c.date, c.time_slot) for c in report.critical] == [(TUESDAY, "06:30")]
    assert report.understaffed == []
    assert report.well_covered == 0


def test_operating_hours_must_be_clock_times_in_order():
    with pytest.raises(ValidationError):
        DayHours(open="6:30", close="15:45")
    with pytest.raises(ValidationError):
        DayHours(open="15:45", close="06:30")
    with pytest.raises(ValidationError):
        HoursRange(start="14:00", end="12:00")
    with pytest.raises(ValidationError):
        BusinessRules.model_validate({"operating_hours": {"tue": {"open": "6:30", "close": "15:45"}}})
    assert DayHours(open="15:45", close="06:30", closed=True).closed


def test_valid_hours_report_empty_open_slots_as_critical():
    rules = BusinessRules.model_validate({"operating_hours": {"tue": {"open": "06:30", "close": "15:45"}}})
    report = coverage_report({}, [staff()], [TUESDAY], rules, ["09:00"])
    assert [(c.date, c.time_slot) for c in report.critical] == [(TUESDAY, "09:00")]


def test_role_catalog_ids_are_unique_and_not_reserved():
    assert [r.id for r in BusinessRules().roles] == [r.id for r in DEFAULT_ROLES]
    assert BusinessRules().role_for("foh") == DEFAULT_ROLES[1]
    assert BusinessRules().role_for("juggler") is None
    with pytest.raises(ValidationError):
        BusinessRules(roles=[DEFAULT_ROLES[0], DEFAULT_ROLES[0]])
    with pytest.raises(ValidationError):
        BusinessRules(roles=[ERASER])


def test_coverage_counts_active_staff_against_peak_minimum():
    members = [staff("s1"), staff("s2"), staff("s3", active=False)]
    schedule = {
        encode("2025-03-04", "s1", "12:00"): BARISTA,
        encode("2025-03-04", "s2", "12:00"): BARISTA,
        encode("2025-03-04", "s3", "12:00"): BARISTA,
        encode("2025-03-04", "s1", "10:00"): BARISTA,
        encode("2025-03-04", "s2", "10:00"): BARISTA,
    }
    report = coverage_report(schedule, members, [TUESDAY], BusinessRules(), ["10:00", "12:00"])
    assert [(c.time_slot, c.staff_count, c.required) for c in report.understaffed] == [("12:00", 2, 3)]
    assert report.well_covered == 1


def test_overstaffed_needs_more_than_three_extra():
    members = [staff(f"s{n}") for n in range(6)]
    schedule = {encode("2025-03-04", m.id, "10:00"): BARISTA for m in members}
    report = coverage_report(schedule, members, [TUESDAY], BusinessRules(), ["10:00"])
    assert len(report.overstaffed) == 1
    report = coverage_report(dict(list(schedule.items())[:5]), members, [TUESDAY], BusinessRules(), ["10:00"])
    assert report.overstaffed == []


def test_labor_percentage_and_bands():
    assert labor_percentage(100, None) is None
    assert labor_percentage(100, DailyRevenue(date=TUESDAY)) is None
    assert labor_percentage(100, DailyRevenue(date=TUESDAY, projected_revenue=300, other_revenue=100)) == 25
    assert labor_band(None, 30) == "none"
    assert labor_band(30, 30) == "ok"
    assert labor_band(35, 30) == "warning"
    assert labor_band(40, 30) == "high"
    assert labor_band(40.5, 30) == "critical"


def test_revenue_report_totals():
    revenue = {"2025-03-04": DailyRevenue(date=TUESDAY, projected_revenue=100)}
    report = revenue_report(hour_of(TUESDAY), [staff()], [TUESDAY, SATURDAY], revenue, BusinessRules())
    tuesday, saturday = report.days
    assert tuesday.labor_percentage == pytest.approx(20.0)
    assert tuesday.band == "ok"
    assert saturday.band == "none"
    assert report.days_with_revenue == 1
    assert report.labor_percentage == pytest.approx(20.0)


def test_shift_blocks_and_average_length():
    schedule = {
        encode("2025-03-04", "s1", "09:00"): BARISTA,
        encode("2025-03-04", "s1", "09:15"): BARISTA,
        encode("2025-03-04", "s1", "09:30"): FOH,
        encode("2025-03-04", "s1", "10:00"): FOH,
    }
    blocks = shift_blocks(schedule, "s1", "2025-03-04")
    assert [(b.start_time, b.end_time, b.role_id, b.slot_count) for b in blocks] == [
        ("09:00", "09:30", "barista", 2),
        ("09:30", "09:45", "foh", 1),
        ("10:00", "10:15", "foh", 1),
    ]
    assert blocks[0].hours == 0.5
    assert average_shift_length(schedule, [staff()], [TUESDAY]) == pytest.approx(0.5)


def test_timesheet_and_utilization():
    members = [staff(), staff("s2")]
    schedule = {**hour_of(TUESDAY), **hour_of(SATURDAY)}
    rows = timesheet(schedule, members, [TUESDAY, SATURDAY])
    assert [d.hours for d in rows[0].days] == [1, 1]
    assert rows[0].total.cost == pytest.approx(45.0)
    assert rows[1].total.hours == 0

    visible = day_slots(6, 17)
    # 05:00 sits before the visible hours and is not counted
    schedule[encode("2025-03-04", "s1", "05:00")] = BARISTA
    usage = utilization(schedule, members, [TUESDAY, SATURDAY], visible)
    assert usage[0].scheduled_slots == 8
    assert usage[0].possible_slots == 2 * len(visible)
    assert usage[0].rate == pytest.approx(8 / (2 * len(visible)) * 100)
    assert usage[1].rate == 0


def test_utilization_stays_within_the_visible_grid():
    visible = day_slots(9, 10)
    schedule = {encode("2025-03-04", "s1", slot): BARISTA for slot in day_slots(6, 12)}
    usage = utilization(schedule, [staff()], [TUESDAY], visible)
    assert usage[0].scheduled_slots == len(visible)
    assert usage[0].rate == pytest.approx(100)


def test_roles_missing_from_the_catalog_still_show_in_the_breakdown():
    retired = Assignment("juggler", "J", "#000000")
    schedule = {**hour_of(TUESDAY), **hour_of(TUESDAY, start_hour=12, assignment=retired)}
    summary = week_summary(schedule, [staff()], DEFAULT_ROLES, [TUESDAY], BusinessRules())
    roles = {r.role_id: r for r in summary.roles}
    assert roles["juggler"].hours == 1
    assert roles["juggler"].code == "J"
    assert summary.total.hours == sum(r.hours for r in summary.roles)
