from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Callable, Iterator, Sequence, TypeVar

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roster.errors import PersistenceError
from roster.models import (
    BusinessSettingsRecord,
    DailyRevenueRecord,
    ScheduleSlotRecord,
    ShiftTemplateRecord,
    StaffOrderRecord,
    StaffRecord,
)
from roster.schemas import BusinessRules, DailyRevenue, ShiftTemplate, Staff, StaffCreate
from roster.slots import date_key as format_date_key, decode, encode
from roster.staff import order_after_archive, order_after_restore
from roster.store import Assignment, ScheduleDelta, ScheduleMap, compute_delta

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
DELETE_BATCH_SIZE = 100
UPSERT_BATCH_SIZE = 500
SLOT_IDENTITY = ("account_id", "date_key", "staff_id", "time_slot")

T = TypeVar("T")


def _batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def serialize_staff(record: StaffRecord) -> Staff:
    return Staff(
        id=record.id,
        name=record.name,
        hourly_rate=record.hourly_rate,
        weekend_rate=record.weekend_rate,
        employment_type=record.employment_type,
        active=record.active is not False,
    )


def serialize_template(record: ShiftTemplateRecord) -> ShiftTemplate:
    return ShiftTemplate(
        id=record.id,
        name=record.name,
        role_id=record.role_id,
        role_code=record.role_code,
        role_color=record.role_color,
        start_time=record.start_time,
        end_time=record.end_time,
    )


def serialize_revenue(record: DailyRevenueRecord) -> DailyRevenue:
    return DailyRevenue(
        date=record.revenue_date,
        projected_revenue=record.projected_revenue or 0,
        other_revenue=record.other_revenue or 0,
        notes=record.notes or "",
    )


class RosterRepository:
    """Remote store for one deployment, keyed by account id.

    Each call opens its own session so the synchronizer can run writes off the
    event loop thread.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    # schedule

    def load_schedule(self, account_id: str) -> dict[str, Assignment]:
        schedule: dict[str, Assignment] = {}
        page = 0
        try:
            with self.session_factory() as db:
                while True:
                    # Paging needs a total order or rows shift between pages.
                    rows = db.scalars(
                        select(ScheduleSlotRecord)
                        .where(ScheduleSlotRecord.account_id == account_id)
                        .order_by(ScheduleSlotRecord.date_key, ScheduleSlotRecord.staff_id, ScheduleSlotRecord.time_slot)
                        .offset(page * PAGE_SIZE)
                        .limit(PAGE_SIZE)
                    ).all()
                    for row in rows:
                        schedule[encode(row.date_key, row.staff_id, row.time_slot)] = Assignment(
                            role_id=row.role_id, role_code=row.role_code, role_color=row.role_color
                        )
                    logger.debug("Loaded page %d: %d slots (total %d)", page + 1, len(rows), len(schedule))
                    if len(rows) < PAGE_SIZE:
                        break
                    page += 1
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load schedule: {exc}") from exc
        logger.info("Loaded %d schedule slots for account %s", len(schedule), account_id)
        return schedule

    def save_schedule_full(self, account_id: str, schedule: ScheduleMap) -> ScheduleDelta:
        if not schedule:
            logger.warning("Refusing to replace the schedule of account %s with an empty one", account_id)
            return ScheduleDelta()
        try:
            with self.session_factory() as db:
                existing = db.execute(
                    select(ScheduleSlotRecord.date_key, ScheduleSlotRecord.staff_id, ScheduleSlotRecord.time_slot)
                    .where(ScheduleSlotRecord.account_id == account_id)
                    .order_by(ScheduleSlotRecord.date_key, ScheduleSlotRecord.staff_id, ScheduleSlotRecord.time_slot)
                ).all()
                stale = [key for key in (encode(*row) for row in existing) if key not in schedule]
                delta = ScheduleDelta(upserts=dict(schedule), deletes=stale)
                self._write_delta(db, account_id, delta)
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save schedule: {exc}") from exc
        logger.info("Saved %d schedule slots (%d removed) for account %s", len(schedule), len(stale), account_id)
        return delta

    def save_schedule_delta(self, account_id: str, desired: ScheduleMap, baseline: ScheduleMap) -> ScheduleDelta:
        delta = compute_delta(desired, baseline)
        if delta.is_empty:
            logger.debug("No schedule changes to save for account %s", account_id)
            return delta
        try:
            with self.session_factory() as db:
                self._write_delta(db, account_id, delta)
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save schedule changes: {exc}") from exc
        logger.info("Delta save: %d upserts, %d deletes for account %s", len(delta.upserts), len(delta.deletes), account_id)
        return delta

    def _write_delta(self, db: Session, account_id: str, delta: ScheduleDelta) -> None:
        for batch in _batched(delta.deletes, DELETE_BATCH_SIZE):
            conditions = []
            for key in batch:
                parts = decode(key)
                conditions.append(
                    and_(
                        ScheduleSlotRecord.date_key == parts.date_key,
                        ScheduleSlotRecord.staff_id == parts.staff_id,
                        ScheduleSlotRecord.time_slot == parts.time_slot,
                    )
                )
            db.execute(delete(ScheduleSlotRecord).where(ScheduleSlotRecord.account_id == account_id, or_(*conditions)))
        rows = []
        for key, assignment in delta.upserts.items():
            parts = decode(key)
            rows.append(
                {
                    "account_id": account_id,
                    "date_key": parts.date_key,
                    "staff_id": parts.staff_id,
                    "time_slot": parts.time_slot,
                    "role_id": assignment.role_id,
                    "role_code": assignment.role_code,
                    "role_color": assignment.role_color,
                }
            )
        for number, batch in enumerate(_batched(rows, UPSERT_BATCH_SIZE), start=1):
            db.execute(self._upsert(db, list(batch)))
            logger.debug("Upsert batch %d: %d slots", number, len(batch))

    @staticmethod
    def _upsert(db: Session, rows: list[dict]):
        dialect = postgresql if db.get_bind().dialect.name == "postgresql" else sqlite
        statement = dialect.insert(ScheduleSlotRecord).values(rows)
        return statement.on_conflict_do_update(
            index_elements=list(SLOT_IDENTITY),
            set_={
                "role_id": statement.excluded.role_id,
                "role_code": statement.excluded.role_code,
                "role_color": statement.excluded.role_color,
            },
        )

    # staff

    def load_staff(self, account_id: str) -> list[Staff]:
        with self.session_factory() as db:
            records = db.scalars(
                select(StaffRecord)
                .where(StaffRecord.account_id == account_id)
                .order_by(StaffRecord.created_at, StaffRecord.id)
            ).all()
            return [serialize_staff(record) for record in records]

    def create_staff(self, account_id: str, payload: StaffCreate) -> Staff:
        with self.session_factory() as db:
            record = StaffRecord(
                id=uuid.uuid4().hex,
                account_id=account_id,
                name=payload.name,
                hourly_rate=payload.hourly_rate,
                weekend_rate=payload.weekend_rate,
                employment_type=payload.employment_type,
                active=True,
            )
            db.add(record)
            db.commit()
            return serialize_staff(record)

    def save_staff(self, account_id: str, staff: Staff) -> Staff | None:
        with self.session_factory() as db:
            record = self._staff_record(db, account_id, staff.id)
            if record is None:
                return None
            record.name = staff.name
            record.hourly_rate = staff.hourly_rate
            record.weekend_rate = staff.weekend_rate
            record.employment_type = staff.employment_type
            db.commit()
            return serialize_staff(record)

    def archive_staff(self, account_id: str, staff_id: str) -> Staff | None:
        """Soft delete: assignments and cost history stay, the column goes."""
        return self._set_active(account_id, staff_id, False)

    def restore_staff(self, account_id: str, staff_id: str) -> Staff | None:
        return self._set_active(account_id, staff_id, True)

    def _set_active(self, account_id: str, staff_id: str, active: bool) -> Staff | None:
        with self.session_factory() as db:
            record = self._staff_record(db, account_id, staff_id)
            if record is None:
                return None
            record.active = active
            order = db.get(StaffOrderRecord, account_id)
            if order is not None:
                update = order_after_restore if active else order_after_archive
                order.staff_ids = update(list(order.staff_ids), staff_id)
            db.commit()
            return serialize_staff(record)

    @staticmethod
    def _staff_record(db: Session, account_id: str, staff_id: str) -> StaffRecord | None:
        record = db.get(StaffRecord, staff_id)
        if record is None or record.account_id != account_id:
            return None
        return record

    def load_staff_order(self, account_id: str) -> list[str]:
        with self.session_factory() as db:
            record = db.get(StaffOrderRecord, account_id)
            return list(record.staff_ids) if record else []

    def save_staff_order(self, account_id: str, staff_ids: list[str]) -> list[str]:
        with self.session_factory() as db:
            record = db.get(StaffOrderRecord, account_id)
            if record is None:
                db.add(StaffOrderRecord(account_id=account_id, staff_ids=list(staff_ids)))
            else:
                record.staff_ids = list(staff_ids)
            db.commit()
        return list(staff_ids)

    # business rules

    def load_business_rules(self, account_id: str) -> BusinessRules:
        with self.session_factory() as db:
            record = db.get(BusinessSettingsRecord, account_id)
            if record is None:
                return BusinessRules()
            return BusinessRules.model_validate(record.rules_json)

    def save_business_rules(self, account_id: str, rules: BusinessRules) -> BusinessRules:
        with self.session_factory() as db:
            record = db.get(BusinessSettingsRecord, account_id)
            payload = rules.model_dump(mode="json")
            if record is None:
                db.add(BusinessSettingsRecord(account_id=account_id, rules_json=payload))
            else:
                record.rules_json = payload
            db.commit()
        return rules

    # templates

    def load_templates(self, account_id: str) -> list[ShiftTemplate]:
        with self.session_factory() as db:
            records = db.scalars(
                select(ShiftTemplateRecord)
                .where(ShiftTemplateRecord.account_id == account_id)
                .order_by(ShiftTemplateRecord.created_at, ShiftTemplateRecord.id)
            ).all()
            return [serialize_template(record) for record in records]

    def save_template(self, account_id: str, template: ShiftTemplate) -> ShiftTemplate:
        with self.session_factory() as db:
            db.add(
                ShiftTemplateRecord(
                    id=template.id,
                    account_id=account_id,
                    name=template.name,
                    role_id=template.role_id,
                    role_code=template.role_code,
                    role_color=template.role_color,
                    start_time=template.start_time,
                    end_time=template.end_time,
                )
            )
            db.commit()
        return template

    def delete_template(self, account_id: str, template_id: str) -> bool:
        with self.session_factory() as db:
            record = db.get(ShiftTemplateRecord, template_id)
            if record is None or record.account_id != account_id:
                return False
            db.delete(record)
            db.commit()
            return True

    # revenue

    def load_revenue(self, account_id: str, start: date, end: date) -> dict[str, DailyRevenue]:
        with self.session_factory() as db:
            records = db.scalars(
                select(DailyRevenueRecord)
                .where(
                    DailyRevenueRecord.account_id == account_id,
                    DailyRevenueRecord.revenue_date >= start,
                    DailyRevenueRecord.revenue_date <= end,
                )
                .order_by(DailyRevenueRecord.revenue_date)
            ).all()
            return {format_date_key(record.revenue_date): serialize_revenue(record) for record in records}

    def save_revenue_entry(self, account_id: str, entry: DailyRevenue) -> DailyRevenue:
        with self.session_factory() as db:
            record = db.scalar(
                select(DailyRevenueRecord).where(
                    DailyRevenueRecord.account_id == account_id,
                    DailyRevenueRecord.revenue_date == entry.date,
                )
            )
            if record is None:
                record = DailyRevenueRecord(account_id=account_id, revenue_date=entry.date)
                db.add(record)
            record.projected_revenue = entry.projected_revenue
            record.other_revenue = entry.other_revenue
            record.notes = entry.notes
            db.commit()
        return entry

    def delete_revenue_entry(self, account_id: str, day: date) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                delete(DailyRevenueRecord).where(
                    DailyRevenueRecord.account_id == account_id,
                    DailyRevenueRecord.revenue_date == day,
                )
            )
            db.commit()
            return bool(result.rowcount)
