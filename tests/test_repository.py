from datetime import date

import pytest
from sqlalchemy import select

from roster import db as roster_db
from roster import repository as repository_module
from roster.models import ScheduleSlotRecord
from roster.repository import RosterRepository
from roster.editor import template_from_selection
from roster.schemas import DEFAULT_ROLES, BusinessRules, DailyRevenue, StaffCreate
from roster.slots import day_slots, encode
from roster.store import Assignment, ScheduleDelta

BARISTA = Assignment("barista", "B", "#F97316")
CHEF = Assignment("chef", "C", "#EA580C")


def repo():
    return RosterRepository(roster_db.SessionLocal)


def week(staff_ids, days=7, assignment=BARISTA):
    schedule = {}
    for offset in range(days):
        date_key = f"2025-03-{offset + 3:02d}"
        for staff_id in staff_ids:
            for slot in day_slots(6, 17):
                schedule[encode(date_key, staff_id, slot)] = assignment
    return schedule


def test_full_save_and_paginated_load(monkeypatch):
    monkeypatch.setattr(repository_module, "PAGE_SIZE", 100)
    schedule = week(["s1", "s2", "s3"])
    repo().save_schedule_full("acct", schedule)
    assert repo().load_schedule("acct") == schedule
    assert repo().load_schedule("other") == {}


def test_full_save_refuses_empty_map():
    repo().save_schedule_full("acct", {encode("2025-03-04", "s1", "09:00"): BARISTA})
    assert repo().save_schedule_full("acct", {}) == ScheduleDelta()
    assert len(repo().load_schedule("acct")) == 1


def test_full_save_removes_stale_rows():
    repo().save_schedule_full("acct", {encode("2025-03-04", "s1", "09:00"): BARISTA})
    delta = repo().save_schedule_full("acct", {encode("2025-03-04", "s1", "10:00"): CHEF})
    assert delta.deletes == [encode("2025-03-04", "s1", "09:00")]
    assert repo().load_schedule("acct") == {encode("2025-03-04", "s1", "10:00"): CHEF}


def test_delta_save_converges_to_desired(monkeypatch):
    monkeypatch.setattr(repository_module, "DELETE_BATCH_SIZE", 7)
    monkeypatch.setattr(repository_module, "UPSERT_BATCH_SIZE", 50)
    baseline = week(["s1", "s2"], days=2)
    repo().save_schedule_full("acct", baseline)

    desired = dict(baseline)
    dropped = [key for key in desired if key.startswith("2025-03-03|s2|")]
    for key in dropped:
        del desired[key]
    changed = [key for key in desired if key.startswith("2025-03-04|s1|")]
    for key in changed:
        desired[key] = CHEF
    desired[encode("2025-03-05", "s3", "12:00")] = BARISTA

    delta = repo().save_schedule_delta("acct", desired, baseline)
    assert sorted(delta.deletes) == sorted(dropped)
    assert set(delta.upserts) == set(changed) | {encode("2025-03-05", "s3", "12:00")}
    assert repo().load_schedule("acct") == desired


def test_empty_delta_touches_nothing():
    baseline = {encode("2025-03-04", "s1", "09:00"): BARISTA}
    repo().save_schedule_full("acct", baseline)
    assert repo().save_schedule_delta("acct", dict(baseline), baseline).is_empty
    with roster_db.SessionLocal() as db:
        assert len(db.scalars(select(ScheduleSlotRecord)).all()) == 1


def test_staff_lifecycle_updates_order():
    r = repo()
    alex = r.create_staff("acct", StaffCreate(name="Alex", hourly_rate=25, weekend_rate=30))
    sam = r.create_staff("acct", StaffCreate(name="Sam", hourly_rate=22))
    r.save_staff_order("acct", [sam.id, alex.id])

    archived = r.archive_staff("acct", alex.id)
    assert archived is not None and archived.active is False
    assert r.load_staff_order("acct") == [sam.id]
    restored = r.restore_staff("acct", alex.id)
    assert restored.active
    assert r.load_staff_order("acct") == [sam.id, alex.id]

    renamed = r.save_staff("acct", alex.model_copy(update={"name": "Alexis"}))
    assert renamed.name == "Alexis"
    assert r.archive_staff("other", alex.id) is None
    assert [s.name for s in r.load_staff("acct")] == ["Alexis", "Sam"]


def test_business_rules_default_and_round_trip():
    r = repo()
    assert r.load_business_rules("acct") == BusinessRules()
    rules = BusinessRules(business_name="Corner Cafe", min_staff_coverage=1, target_labor_percentage=28)
    r.save_business_rules("acct", rules)
    assert r.load_business_rules("acct") == rules


def test_templates_and_revenue():
    r = repo()
    template = template_from_selection("Open", DEFAULT_ROLES[0], "06:30", "12:00")
    r.save_template("acct", template)
    assert r.load_templates("acct") == [template]
    assert not r.delete_template("other", template.id)
    assert r.delete_template("acct", template.id)
    assert r.load_templates("acct") == []

    entry = DailyRevenue(date=date(2025, 3, 4), projected_revenue=1200, other_revenue=50, notes="market day")
    r.save_revenue_entry("acct", entry)
    r.save_revenue_entry("acct", entry.model_copy(update={"projected_revenue": 1500}))
    loaded = r.load_revenue("acct", date(2025, 3, 3), date(2025, 3, 9))
    assert list(loaded) == ["2025-03-04"]
    assert loaded["2025-03-04"].total == pytest.approx(1550)
    assert r.load_revenue("acct", date(2025, 3, 5), date(2025, 3, 9)) == {}
    assert r.delete_revenue_entry("acct", date(2025, 3, 4))
    assert not r.delete_revenue_entry("acct", date(2025, 3, 4))
