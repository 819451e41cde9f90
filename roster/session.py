from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable

from roster.analytics import (
    CoverageReport,
    RevenueReport,
    TimesheetRow,
    Utilization,
    WeekSummary,
    average_shift_length,
    coverage_report,
    revenue_report,
    timesheet,
    utilization,
    week_summary,
)
from roster.editor import GridView, ScheduleEditor
from roster.errors import PersistenceError
from roster.history import HistoryManager
from roster.repository import RosterRepository
from roster.schemas import DEFAULT_ROLES, BusinessRules, DailyRevenue, Role, ShiftTemplate, Staff
from roster.staff import move_staff, ordered_staff
from roster.store import ScheduleStore
from roster.sync import BackupRecord, LocalBackup, ScheduleSynchronizer, recovery_offer

logger = logging.getLogger(__name__)


class RosterSession:
    """One account's roster held in memory and kept in sync with the repository."""

    def __init__(
        self,
        account_id: str,
        repository: RosterRepository,
        *,
        view: GridView | None = None,
        backup: LocalBackup | None = None,
        debounce_seconds: float | None = None,
        on_error: Callable[[PersistenceError], None] | None = None,
    ) -> None:
        self.account_id = account_id
        self.repository = repository
        self.view = view or GridView.week_of(date.today())
        self.store = ScheduleStore()
        self.history = HistoryManager()
        self.editor = ScheduleEditor(self.store, self.history, self.view)
        self.synchronizer = ScheduleSynchronizer(
            repository,
            account_id,
            backup,
            debounce_seconds=debounce_seconds,
            on_error=on_error,
        )
        self.roles: list[Role] = list(DEFAULT_ROLES)
        self.staff: list[Staff] = []
        self.staff_order: list[str] = []
        self.rules = BusinessRules()
        self.templates: list[ShiftTemplate] = []
        self.revenue: dict[str, DailyRevenue] = {}
        self._unsubscribe: Callable[[], None] | None = None

    async def load(self, confirm_restore: Callable[[BackupRecord], bool] | None = None) -> BackupRecord | None:
        """Load everything for the account; offer the local backup if the remote schedule is empty.

        Returns the backup that was restored, if any.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        schedule = await asyncio.to_thread(self.repository.load_schedule, self.account_id)
        self.staff = await asyncio.to_thread(self.repository.load_staff, self.account_id)
        self.staff_order = await asyncio.to_thread(self.repository.load_staff_order, self.account_id)
        self.rules = await asyncio.to_thread(self.repository.load_business_rules, self.account_id)
        self.roles = list(self.rules.roles)
        self.templates = await asyncio.to_thread(self.repository.load_templates, self.account_id)
        await self.load_revenue()

        self.store.replace_all(schedule)
        self.history.clear()
        self.synchronizer.last_confirmed = dict(schedule)
        self._unsubscribe = self.store.subscribe(self.synchronizer.notify)

        offer = recovery_offer(schedule, self.account_id, self.synchronizer.backup)
        if offer is None or confirm_restore is None or not confirm_restore(offer):
            return None
        logger.info("Restoring %d slots from backup for account %s", offer.slot_count, self.account_id)
        self.editor.restore(offer.schedule_map())
        return offer

    async def load_revenue(self) -> dict[str, DailyRevenue]:
        self.revenue = await asyncio.to_thread(
            self.repository.load_revenue, self.account_id, self.view.dates[0], self.view.dates[-1]
        )
        return self.revenue

    async def close(self) -> bool:
        saved = await self.synchronizer.flush()
        self.synchronizer.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        return saved

    @property
    def columns(self) -> list[Staff]:
        return ordered_staff(self.staff, self.staff_order)

    async def reorder(self, dragged_id: str, target_id: str) -> list[str]:
        order = [s.id for s in self.columns]
        self.staff_order = await asyncio.to_thread(
            self.repository.save_staff_order, self.account_id, move_staff(order, dragged_id, target_id)
        )
        return self.staff_order

    def week_summary(self) -> WeekSummary:
        return week_summary(self.store.get_all(), self.staff, self.roles, self.view.dates, self.rules)

    def coverage(self) -> CoverageReport:
        return coverage_report(self.store.get_all(), self.staff, self.view.dates, self.rules, self.view.canonical_slots)

    def revenue_report(self) -> RevenueReport:
        return revenue_report(self.store.get_all(), self.staff, self.view.dates, self.revenue, self.rules)

    def timesheet(self) -> list[TimesheetRow]:
        return timesheet(self.store.get_all(), self.columns, self.view.dates)

    def utilization(self) -> list[Utilization]:
        return utilization(self.store.get_all(), self.columns, self.view.dates, self.view.canonical_slots)

    def average_shift_length(self) -> float:
        return average_shift_length(self.store.get_all(), self.columns, self.view.dates)
