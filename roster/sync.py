from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from pydantic import BaseModel, ConfigDict, Field

from roster.errors import PersistenceError
from roster.store import Assignment, ScheduleDelta, ScheduleMap, schedule_from_json, schedule_to_json

logger = logging.getLogger(__name__)

RETRY_BASE_SECONDS = 2.0
RETRY_CAP_SECONDS = 60.0
MAX_RETRIES = 5


def default_debounce_seconds() -> float:
    return float(os.getenv("ROSTER_SAVE_DEBOUNCE_SECONDS", "1.0"))


def default_backup_dir() -> str:
    return os.getenv("ROSTER_BACKUP_DIR", "./.roster_backups")


class ScheduleRemote(Protocol):
    def load_schedule(self, account_id: str) -> dict[str, Assignment]: ...

    def save_schedule_full(self, account_id: str, schedule: ScheduleMap) -> ScheduleDelta: ...

    def save_schedule_delta(self, account_id: str, desired: ScheduleMap, baseline: ScheduleMap) -> ScheduleDelta: ...


class BackupRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(alias="accountId")
    timestamp: datetime
    slot_count: int = Field(alias="slotCount")
    schedule: dict[str, dict[str, str]]

    def schedule_map(self) -> dict[str, Assignment]:
        return schedule_from_json(self.schedule)


class LocalBackup:
    """Crash-recovery copy of the desired schedule, one JSON file per account."""

    def __init__(self, directory: str | Path | None = None) -> None:
        self.directory = Path(directory or default_backup_dir())
        self._offered: set[str] = set()

    def path_for(self, account_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", account_id)
        return self.directory / f"schedule_backup_{safe}.json"

    def write(self, account_id: str, schedule: ScheduleMap) -> None:
        record = BackupRecord(
            account_id=account_id,
            timestamp=datetime.now(timezone.utc),
            slot_count=len(schedule),
            schedule=schedule_to_json(schedule),
        )
        path = self.path_for(account_id)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(record.model_dump_json(by_alias=True), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError:
            logger.warning("Could not write schedule backup for account %s", account_id, exc_info=True)

    def read(self, account_id: str) -> BackupRecord | None:
        path = self.path_for(account_id)
        if not path.exists():
            return None
        try:
            record = BackupRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable schedule backup %s", path, exc_info=True)
            return None
        if record.account_id != account_id:
            logger.warning("Backup %s belongs to account %s, not %s", path, record.account_id, account_id)
            return None
        return record

    def take_offer(self, account_id: str) -> BackupRecord | None:
        """The backup to offer for restore, at most once per account per session."""
        if account_id in self._offered:
            return None
        record = self.read(account_id)
        if record is None or not record.schedule:
            return None
        self._offered.add(account_id)
        return record

    def clear(self, account_id: str) -> None:
        self.path_for(account_id).unlink(missing_ok=True)


def recovery_offer(remote_schedule: ScheduleMap, account_id: str, backup: LocalBackup) -> BackupRecord | None:
    if remote_schedule:
        return None
    record = backup.take_offer(account_id)
    if record is not None:
        logger.info(
            "Remote schedule for account %s is empty; backup from %s holds %d slots",
            account_id,
            record.timestamp.isoformat(),
            record.slot_count,
        )
    return record


class ScheduleSynchronizer:
    """Debounced writer that keeps the remote schedule converging to the latest state.

    At most one save runs at a time. States produced while a save is in flight
    collapse into a single pending slot, latest wins.
    """

    def __init__(
        self,
        remote: ScheduleRemote,
        account_id: str,
        backup: LocalBackup | None = None,
        *,
        baseline: ScheduleMap | None = None,
        debounce_seconds: float | None = None,
        retry_base_seconds: float = RETRY_BASE_SECONDS,
        retry_cap_seconds: float = RETRY_CAP_SECONDS,
        max_retries: int = MAX_RETRIES,
        on_error: Callable[[PersistenceError], None] | None = None,
        on_saved: Callable[[ScheduleMap], None] | None = None,
    ) -> None:
        self.remote = remote
        self.account_id = account_id
        self.backup = backup or LocalBackup()
        self.debounce_seconds = default_debounce_seconds() if debounce_seconds is None else debounce_seconds
        self.retry_base_seconds = retry_base_seconds
        self.retry_cap_seconds = retry_cap_seconds
        self.max_retries = max_retries
        self.on_error = on_error
        self.on_saved = on_saved

        self.save_in_progress = False
        self.pending: ScheduleMap | None = None
        # None until the remote state is known; the first save is then a full save.
        self.last_confirmed: dict[str, Assignment] | None = dict(baseline) if baseline is not None else None
        self.last_error: PersistenceError | None = None
        self.retry_attempt = 0
        # Most recent state handed to notify or save; retries always send this one.
        self.latest_desired: ScheduleMap | None = None

        self._queued: ScheduleMap | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    def notify(self, state: ScheduleMap) -> None:
        """Store listener: (re)start the debounce timer for ``state``."""
        self._cancel_timers()
        self.retry_attempt = 0
        self._queued = state
        self.latest_desired = state
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.debounce_seconds, self._fire_debounced)

    def _fire_debounced(self) -> None:
        self._debounce_handle = None
        state, self._queued = self._queued, None
        if state is not None:
            self._spawn(state)

    def _spawn(self, state: ScheduleMap) -> None:
        task = asyncio.get_running_loop().create_task(self.save(state))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def save(self, state: ScheduleMap) -> bool:
        self.latest_desired = state
        if self.save_in_progress:
            self.pending = state
            logger.debug("Save in progress; holding %d slots as pending", len(state))
            return False
        self.save_in_progress = True
        try:
            ok = await self._save_once(state)
        finally:
            self.save_in_progress = False
        pending, self.pending = self.pending, None
        if pending is not None:
            return await self.save(pending)
        if not ok:
            self._schedule_retry()
        return ok

    async def _save_once(self, state: ScheduleMap) -> bool:
        desired = dict(state)
        if self.last_confirmed is None and not desired:
            logger.warning("Skipping save of an empty schedule for account %s with no confirmed remote state", self.account_id)
            return True
        self.backup.write(self.account_id, desired)
        try:
            if self.last_confirmed is None:
                delta = await asyncio.to_thread(self.remote.save_schedule_full, self.account_id, desired)
            else:
                delta = await asyncio.to_thread(
                    self.remote.save_schedule_delta, self.account_id, desired, self.last_confirmed
                )
        except PersistenceError as exc:
            self.last_error = exc
            logger.error("Schedule save failed for account %s", self.account_id, exc_info=True)
            if self.on_error is not None:
                self.on_error(exc)
            return False
        self.last_confirmed = desired
        self.last_error = None
        self.retry_attempt = 0
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
        logger.info(
            "Schedule saved for account %s: %d upserts, %d deletes",
            self.account_id,
            len(delta.upserts),
            len(delta.deletes),
        )
        if self.on_saved is not None:
            self.on_saved(desired)
        return True

    def _schedule_retry(self) -> None:
        if self._debounce_handle is not None or self._is_confirmed(self.latest_desired):
            # A newer edit is already on its way, or nothing is left to send.
            return
        if self.retry_attempt >= self.max_retries:
            logger.warning("Giving up on schedule save for account %s after %d retries", self.account_id, self.retry_attempt)
            return
        delay = min(self.retry_base_seconds * 2 ** self.retry_attempt, self.retry_cap_seconds)
        self.retry_attempt += 1
        if self._retry_handle is not None:
            self._retry_handle.cancel()
        logger.info("Retrying schedule save for account %s in %.1fs (attempt %d)", self.account_id, delay, self.retry_attempt)
        self._retry_handle = asyncio.get_running_loop().call_later(delay, self._fire_retry)

    def _fire_retry(self) -> None:
        self._retry_handle = None
        state = self.latest_desired
        if state is None or self._is_confirmed(state):
            return
        self._spawn(state)

    def _is_confirmed(self, state: ScheduleMap | None) -> bool:
        return state is None or (self.last_confirmed is not None and dict(state) == self.last_confirmed)

    @property
    def retry_scheduled(self) -> bool:
        return self._retry_handle is not None

    async def flush(self) -> bool:
        """Save any debounced state now and wait for in-flight saves."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        state, self._queued = self._queued, None
        if state is not None:
            self._spawn(state)
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self.last_error is None

    def close(self) -> None:
        self._cancel_timers()
        self._queued = None

    def _cancel_timers(self) -> None:
        for handle in (self._debounce_handle, self._retry_handle):
            if handle is not None:
                handle.cancel()
        self._debounce_handle = None
        self._retry_handle = None
