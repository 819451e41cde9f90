from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Literal

from roster.errors import ConfirmationRequiredError, ScheduleValidationError
from roster.history import HistoryManager
from roster.schemas import ERASER_ROLE_ID, Role, ShiftTemplate
from roster.slots import (
    SLOT_MINUTES,
    date_key as format_date_key,
    day_slots,
    decode,
    encode,
    minutes_to_time,
    next_slot,
    previous_slot,
    slot_range,
    sub_intervals,
    time_to_minutes,
)
from roster.store import Assignment, ScheduleMap, ScheduleStore, keys_for


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


@dataclass
class GridView:
    """The window of the roster currently on screen."""

    dates: list[date]
    start_hour: int = 6
    end_hour: int = 17
    interval: int = SLOT_MINUTES

    @classmethod
    def week_of(cls, day: date, days: int = 7, **kwargs) -> GridView:
        monday = week_start(day)
        return cls(dates=[monday + timedelta(days=i) for i in range(days)], **kwargs)

    @property
    def date_keys(self) -> list[str]:
        return [format_date_key(d) for d in self.dates]

    @property
    def time_slots(self) -> list[str]:
        return day_slots(self.start_hour, self.end_hour, self.interval)

    @property
    def canonical_slots(self) -> list[str]:
        return day_slots(self.start_hour, self.end_hour)


@dataclass(frozen=True)
class PendingClear:
    target: Literal["day", "week"]
    date_keys: tuple[str, ...]
    slot_count: int


@dataclass
class _Stroke:
    date_key: str
    staff_id: str
    role: Role
    recorded: bool = False
    cells: list[str] = field(default_factory=list)


def assignment_for(role: Role) -> Assignment:
    return Assignment(role_id=role.id, role_code=role.code, role_color=role.color)


def template_from_selection(name: str, role: Role, start_time: str, end_time: str) -> ShiftTemplate:
    slot_range(start_time, end_time)
    return ShiftTemplate(
        id=str(uuid.uuid4()),
        name=name,
        role_id=role.id,
        role_code=role.code,
        role_color=role.color,
        start_time=start_time,
        end_time=end_time,
    )


class ScheduleEditor:
    """Edit operations over a ScheduleStore.

    Every committed edit records the pre-edit state in the history first, so a
    single undo restores it. Edits that would not change anything are dropped
    without touching the history.
    """

    def __init__(self, store: ScheduleStore, history: HistoryManager, view: GridView) -> None:
        self.store = store
        self.history = history
        self.view = view
        self.copied_day: str | None = None
        self.pending_clear: PendingClear | None = None
        self._stroke: _Stroke | None = None

    def _commit(self, new_state: dict[str, Assignment], changed: bool, *, record: bool = True) -> bool:
        if not changed:
            return False
        if record:
            self.history.record(self.store.get_all())
        self.store.replace_all(new_state)
        return True

    # painting

    def paint(self, date_key: str, staff_id: str, time_slot: str, role: Role) -> bool:
        changed = self.begin_stroke(date_key, staff_id, time_slot, role)
        self.end_stroke()
        return changed

    def begin_stroke(self, date_key: str, staff_id: str, time_slot: str, role: Role) -> bool:
        self._stroke = _Stroke(date_key=date_key, staff_id=staff_id, role=role)
        return self._paint_cell(time_slot)

    def extend_stroke(self, date_key: str, staff_id: str, time_slot: str) -> bool:
        stroke = self._stroke
        if stroke is None or (date_key, staff_id) != (stroke.date_key, stroke.staff_id):
            return False
        if time_slot in stroke.cells:
            return False
        return self._paint_cell(time_slot)

    def end_stroke(self) -> list[str]:
        stroke, self._stroke = self._stroke, None
        return stroke.cells if stroke else []

    @property
    def stroke_active(self) -> bool:
        return self._stroke is not None

    def _paint_cell(self, time_slot: str) -> bool:
        stroke = self._stroke
        if stroke is None:
            return False
        stroke.cells.append(time_slot)
        current = self.store.get_all()
        new_state = dict(current)
        changed = False
        if stroke.role.id == ERASER_ROLE_ID:
            key = encode(stroke.date_key, stroke.staff_id, time_slot)
            if key in new_state:
                del new_state[key]
                changed = True
        else:
            assignment = assignment_for(stroke.role)
            for slot in sub_intervals(time_slot, self.view.interval):
                key = encode(stroke.date_key, stroke.staff_id, slot)
                if new_state.get(key) == assignment:
                    continue
                new_state[key] = assignment
                changed = True
        # One history entry per stroke, taken before its first real change.
        committed = self._commit(new_state, changed, record=not stroke.recorded)
        if committed:
            stroke.recorded = True
        return committed

    # range fills

    def quick_fill(self, date_key: str, staff_id: str, start_time: str, end_time: str, role: Role) -> bool:
        if role.id == ERASER_ROLE_ID:
            raise ScheduleValidationError("Quick fill needs a role, not the eraser")
        slots = slot_range(start_time, end_time)
        return self._fill(date_key, staff_id, slots, assignment_for(role))

    def apply_template(self, template: ShiftTemplate, date_key: str, staff_id: str) -> bool:
        slot_range(template.start_time, template.end_time)
        start = time_to_minutes(template.start_time)
        end = time_to_minutes(template.end_time)
        slots: list[str] = []
        for step in range(start, end, self.view.interval):
            slots.extend(s for s in sub_intervals(minutes_to_time(step), self.view.interval) if time_to_minutes(s) < end)
        assignment = Assignment(role_id=template.role_id, role_code=template.role_code, role_color=template.role_color)
        return self._fill(date_key, staff_id, slots, assignment)

    def _fill(self, date_key: str, staff_id: str, slots: list[str], assignment: Assignment) -> bool:
        new_state = dict(self.store.get_all())
        changed = False
        for slot in slots:
            key = encode(date_key, staff_id, slot)
            if new_state.get(key) != assignment:
                new_state[key] = assignment
                changed = True
        return self._commit(new_state, changed)

    # shift deletion

    def shift_run(self, date_key: str, staff_id: str, time_slot: str) -> list[str]:
        """Keys of the contiguous same-role run containing the slot."""
        current = self.store.get_all()
        clicked = current.get(encode(date_key, staff_id, time_slot))
        if clicked is None:
            return []
        run = [time_slot]
        slot = previous_slot(time_slot)
        while slot is not None and _same_role(current.get(encode(date_key, staff_id, slot)), clicked):
            run.insert(0, slot)
            slot = previous_slot(slot)
        slot = next_slot(time_slot)
        while slot is not None and _same_role(current.get(encode(date_key, staff_id, slot)), clicked):
            run.append(slot)
            slot = next_slot(slot)
        return [encode(date_key, staff_id, s) for s in run]

    def delete_shift(self, date_key: str, staff_id: str, time_slot: str) -> bool:
        run = self.shift_run(date_key, staff_id, time_slot)
        new_state = dict(self.store.get_all())
        for key in run:
            del new_state[key]
        return self._commit(new_state, bool(run))

    # day clipboard

    def copy_day(self, date_key: str) -> None:
        self.copied_day = date_key

    def paste_day(self, target_date_key: str) -> bool:
        source = self.copied_day
        if source is None or source == target_date_key:
            return False
        current = self.store.get_all()
        new_state = dict(current)
        changed = False
        for key in keys_for(current, source):
            parts = decode(key)
            target_key = encode(target_date_key, parts.staff_id, parts.time_slot)
            if new_state.get(target_key) != current[key]:
                new_state[target_key] = current[key]
                changed = True
        return self._commit(new_state, changed)

    # clearing, two-step

    def request_clear_day(self, date_key: str) -> PendingClear:
        return self._request_clear("day", (date_key,))

    def request_clear_week(self) -> PendingClear:
        return self._request_clear("week", tuple(self.view.date_keys))

    def _request_clear(self, target: Literal["day", "week"], date_keys: tuple[str, ...]) -> PendingClear:
        current = self.store.get_all()
        count = sum(1 for date_key in date_keys for _ in keys_for(current, date_key))
        self.pending_clear = PendingClear(target=target, date_keys=date_keys, slot_count=count)
        return self.pending_clear

    def cancel_clear(self) -> None:
        self.pending_clear = None

    def confirm_clear(self) -> bool:
        pending, self.pending_clear = self.pending_clear, None
        if pending is None:
            raise ConfirmationRequiredError("No clear is awaiting confirmation")
        current = self.store.get_all()
        doomed = {key for date_key in pending.date_keys for key in keys_for(current, date_key)}
        new_state = {key: value for key, value in current.items() if key not in doomed}
        return self._commit(new_state, bool(doomed))

    def restore(self, state: ScheduleMap) -> bool:
        """Replace the whole schedule as one undoable edit."""
        new_state = dict(state)
        return self._commit(new_state, new_state != dict(self.store.get_all()))

    # history

    def undo(self) -> bool:
        self.cancel_stroke()
        snapshot = self.history.undo(self.store.get_all())
        if snapshot is None:
            return False
        self.store.replace_all(snapshot)
        return True

    def redo(self) -> bool:
        self.cancel_stroke()
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self.store.replace_all(snapshot)
        return True

    def cancel_stroke(self) -> None:
        self._stroke = None


def _same_role(candidate: Assignment | None, clicked: Assignment) -> bool:
    return candidate is not None and candidate.role_id == clicked.role_id

