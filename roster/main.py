from __future__ import annotations

import csv
import io
import logging
import os
from datetime import date, timedelta

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from roster import db as roster_db
from roster.analytics import CoverageReport, RevenueReport, WeekSummary, coverage_report, revenue_report, timesheet, week_summary
from roster.editor import template_from_selection
from roster.errors import PersistenceError, ScheduleValidationError
from roster.repository import RosterRepository
from roster.schemas import (
    AssignmentIn,
    BusinessRules,
    DailyRevenue,
    RevenueUpdate,
    Role,
    ScheduleDeltaOut,
    ScheduleDeltaRequest,
    ShiftTemplate,
    Staff,
    StaffCreate,
)
from roster.slots import date_key as format_date_key, day_slots
from roster.staff import ordered_staff
from roster.store import Assignment, schedule_from_json, schedule_to_json

logger = logging.getLogger(__name__)

app = FastAPI(title="Roster Scheduler")


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


class TemplatePayload(BaseModel):
    name: str
    role_id: str
    start_time: str
    end_time: str


def get_repository() -> RosterRepository:
    return RosterRepository(roster_db.SessionLocal)


def _parse_schedule(payload: dict[str, AssignmentIn]) -> dict[str, Assignment]:
    try:
        return schedule_from_json({key: value.model_dump() for key, value in payload.items()})
    except ScheduleValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _validated_rules(payload: dict) -> BusinessRules:
    try:
        return BusinessRules.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _persistence_failed(exc: PersistenceError) -> HTTPException:
    logger.error("Schedule persistence failed: %s", exc)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Schedule could not be saved")


def _view_dates(start: date, days: int) -> list[date]:
    return [start + timedelta(days=i) for i in range(days)]


@app.get("/health")
def health() -> dict:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}


# schedule


@app.get("/api/accounts/{account_id}/schedule")
def get_schedule(account_id: str, repo: RosterRepository = Depends(get_repository)) -> dict[str, dict[str, str]]:
    try:
        return schedule_to_json(repo.load_schedule(account_id))
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc


@app.put("/api/accounts/{account_id}/schedule", response_model=ScheduleDeltaOut)
def put_schedule(
    account_id: str,
    payload: dict[str, AssignmentIn],
    repo: RosterRepository = Depends(get_repository),
) -> ScheduleDeltaOut:
    schedule = _parse_schedule(payload)
    if not schedule:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Refusing to replace the schedule with an empty one")
    try:
        delta = repo.save_schedule_full(account_id, schedule)
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return ScheduleDeltaOut(upserted=len(delta.upserts), deleted=len(delta.deletes))


@app.post("/api/accounts/{account_id}/schedule/delta", response_model=ScheduleDeltaOut)
def post_schedule_delta(
    account_id: str,
    payload: ScheduleDeltaRequest,
    repo: RosterRepository = Depends(get_repository),
) -> ScheduleDeltaOut:
    desired = _parse_schedule(payload.desired)
    baseline = _parse_schedule(payload.baseline)
    try:
        delta = repo.save_schedule_delta(account_id, desired, baseline)
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return ScheduleDeltaOut(upserted=len(delta.upserts), deleted=len(delta.deletes))


# staff


@app.get("/api/accounts/{account_id}/staff", response_model=list[Staff])
def get_staff(
    account_id: str,
    include_archived: bool = False,
    repo: RosterRepository = Depends(get_repository),
) -> list[Staff]:
    staff = repo.load_staff(account_id)
    if include_archived:
        return staff
    return ordered_staff(staff, repo.load_staff_order(account_id))


@app.post("/api/accounts/{account_id}/staff", response_model=Staff, status_code=status.HTTP_201_CREATED)
def create_staff(account_id: str, payload: StaffCreate, repo: RosterRepository = Depends(get_repository)) -> Staff:
    return repo.create_staff(account_id, payload)


@app.put("/api/accounts/{account_id}/staff/{staff_id}", response_model=Staff)
def update_staff(
    account_id: str,
    staff_id: str,
    payload: StaffCreate,
    repo: RosterRepository = Depends(get_repository),
) -> Staff:
    saved = repo.save_staff(account_id, Staff(id=staff_id, **payload.model_dump()))
    if saved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return saved


@app.post("/api/accounts/{account_id}/staff/{staff_id}/archive", response_model=Staff)
def archive_staff(account_id: str, staff_id: str, repo: RosterRepository = Depends(get_repository)) -> Staff:
    archived = repo.archive_staff(account_id, staff_id)
    if archived is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return archived


@app.post("/api/accounts/{account_id}/staff/{staff_id}/restore", response_model=Staff)
def restore_staff(account_id: str, staff_id: str, repo: RosterRepository = Depends(get_repository)) -> Staff:
    restored = repo.restore_staff(account_id, staff_id)
    if restored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return restored


@app.get("/api/accounts/{account_id}/staff-order")
def get_staff_order(account_id: str, repo: RosterRepository = Depends(get_repository)) -> list[str]:
    return repo.load_staff_order(account_id)


@app.put("/api/accounts/{account_id}/staff-order")
def put_staff_order(account_id: str, payload: list[str], repo: RosterRepository = Depends(get_repository)) -> list[str]:
    if len(set(payload)) != len(payload):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Staff ids must be unique")
    return repo.save_staff_order(account_id, payload)


# business rules


@app.get("/api/accounts/{account_id}/rules", response_model=BusinessRules)
def get_rules(account_id: str, repo: RosterRepository = Depends(get_repository)) -> BusinessRules:
    return repo.load_business_rules(account_id)


@app.put("/api/accounts/{account_id}/rules", response_model=BusinessRules)
def put_rules(account_id: str, payload: dict = Body(...), repo: RosterRepository = Depends(get_repository)) -> BusinessRules:
    return repo.save_business_rules(account_id, _validated_rules(payload))


# roles


@app.get("/api/accounts/{account_id}/roles", response_model=list[Role])
def get_roles(account_id: str, repo: RosterRepository = Depends(get_repository)) -> list[Role]:
    return repo.load_business_rules(account_id).roles


@app.put("/api/accounts/{account_id}/roles", response_model=list[Role])
def put_roles(account_id: str, payload: list = Body(...), repo: RosterRepository = Depends(get_repository)) -> list[Role]:
    # Existing assignments keep the code and color they were painted with.
    current = repo.load_business_rules(account_id)
    rules = _validated_rules({**current.model_dump(), "roles": payload})
    return repo.save_business_rules(account_id, rules).roles


# templates


@app.get("/api/accounts/{account_id}/templates", response_model=list[ShiftTemplate])
def get_templates(account_id: str, repo: RosterRepository = Depends(get_repository)) -> list[ShiftTemplate]:
    return repo.load_templates(account_id)


@app.post("/api/accounts/{account_id}/templates", response_model=ShiftTemplate, status_code=status.HTTP_201_CREATED)
def create_template(
    account_id: str,
    payload: TemplatePayload,
    repo: RosterRepository = Depends(get_repository),
) -> ShiftTemplate:
    role = repo.load_business_rules(account_id).role_for(payload.role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role: {payload.role_id}")
    try:
        template = template_from_selection(payload.name, role, payload.start_time, payload.end_time)
    except ScheduleValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return repo.save_template(account_id, template)


@app.delete("/api/accounts/{account_id}/templates/{template_id}")
def delete_template(account_id: str, template_id: str, repo: RosterRepository = Depends(get_repository)) -> dict:
    if not repo.delete_template(account_id, template_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return {"ok": True}


# revenue


@app.get("/api/accounts/{account_id}/revenue")
def get_revenue(
    account_id: str,
    start: date,
    end: date,
    repo: RosterRepository = Depends(get_repository),
) -> dict[str, DailyRevenue]:
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must not be before start")
    return repo.load_revenue(account_id, start, end)


@app.put("/api/accounts/{account_id}/revenue/{day}", response_model=DailyRevenue)
def put_revenue(
    account_id: str,
    day: date,
    payload: RevenueUpdate,
    repo: RosterRepository = Depends(get_repository),
) -> DailyRevenue:
    return repo.save_revenue_entry(account_id, DailyRevenue(date=day, **payload.model_dump()))


@app.delete("/api/accounts/{account_id}/revenue/{day}")
def delete_revenue(account_id: str, day: date, repo: RosterRepository = Depends(get_repository)) -> dict:
    if not repo.delete_revenue_entry(account_id, day):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No revenue entry for that date")
    return {"ok": True}


# analytics


@app.get("/api/accounts/{account_id}/analytics/week", response_model=WeekSummary)
def get_week_summary(
    account_id: str,
    start: date,
    days: int = Query(default=7, ge=1, le=31),
    repo: RosterRepository = Depends(get_repository),
) -> WeekSummary:
    rules = repo.load_business_rules(account_id)
    return week_summary(
        repo.load_schedule(account_id),
        repo.load_staff(account_id),
        rules.roles,
        _view_dates(start, days),
        rules,
    )


@app.get("/api/accounts/{account_id}/analytics/coverage", response_model=CoverageReport)
def get_coverage(
    account_id: str,
    start: date,
    days: int = Query(default=7, ge=1, le=31),
    repo: RosterRepository = Depends(get_repository),
) -> CoverageReport:
    return coverage_report(
        repo.load_schedule(account_id),
        repo.load_staff(account_id),
        _view_dates(start, days),
        repo.load_business_rules(account_id),
        day_slots(),
    )


@app.get("/api/accounts/{account_id}/analytics/revenue", response_model=RevenueReport)
def get_revenue_report(
    account_id: str,
    start: date,
    days: int = Query(default=7, ge=1, le=31),
    repo: RosterRepository = Depends(get_repository),
) -> RevenueReport:
    dates = _view_dates(start, days)
    return revenue_report(
        repo.load_schedule(account_id),
        repo.load_staff(account_id),
        dates,
        repo.load_revenue(account_id, dates[0], dates[-1]),
        repo.load_business_rules(account_id),
    )


@app.get("/api/accounts/{account_id}/export/timesheet.csv")
def export_timesheet(
    account_id: str,
    start: date,
    days: int = Query(default=7, ge=1, le=31),
    repo: RosterRepository = Depends(get_repository),
) -> Response:
    dates = _view_dates(start, days)
    staff = ordered_staff(repo.load_staff(account_id), repo.load_staff_order(account_id))
    rows = timesheet(repo.load_schedule(account_id), staff, dates)
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(["staff_id", "name", "employment_type", *(format_date_key(d) for d in dates), "total_hours", "total_cost"])
    for row in rows:
        writer.writerow(
            [
                row.staff_id,
                row.name,
                row.employment_type,
                *(f"{day.hours:.2f}" for day in row.days),
                f"{row.total.hours:.2f}",
                f"{row.total.cost:.2f}",
            ]
        )
    return Response(content=out.getvalue(), media_type="text/csv")
