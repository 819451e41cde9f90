from datetime import date

import pytest

from roster.editor import GridView, ScheduleEditor, template_from_selection
from roster.errors import ConfirmationRequiredError, ScheduleValidationError
from roster.history import HistoryManager
from roster.schemas import DEFAULT_ROLES, ERASER
from roster.slots import encode
from roster.store import Assignment, ScheduleStore

BARISTA, FOH = DEFAULT_ROLES[0], DEFAULT_ROLES[1]
MONDAY = date(2025, 3, 3)
DAY = "2025-03-04"
OTHER_DAY = "2025-03-05"


def make_editor(interval=15, initial=None):
    store = ScheduleStore(initial)
    view = GridView.week_of(MONDAY, start_hour=6, end_hour=17, interval=interval)
    return ScheduleEditor(store, HistoryManager(), view)


def a(role):
    return Assignment(role.id, role.code, role.color)


def test_paint_hour_cell_fills_every_quarter():
    editor = make_editor(interval=60)
    assert editor.paint(DAY, "s1", "09:00", BARISTA)
    schedule = editor.store.get_all()
    for slot in ("09:00", "09:15", "09:30", "09:45"):
        assert schedule[encode(DAY, "s1", slot)] == a(BARISTA)
    assert len(schedule) == 4


def test_eraser_removes_only_the_exact_slot():
    editor = make_editor(interval=60)
    editor.paint(DAY, "s1", "09:00", BARISTA)
    editor.paint(DAY, "s1", "09:00", ERASER)
    schedule = editor.store.get_all()
    assert encode(DAY, "s1", "09:00") not in schedule
    assert encode(DAY, "s1", "09:15") in schedule


def test_repainting_same_role_does_not_record_history():
    editor = make_editor()
    editor.paint(DAY, "s1", "09:00", BARISTA)
    assert not editor.paint(DAY, "s1", "09:00", BARISTA)
    assert editor.undo()
    assert len(editor.store) == 0
    assert not editor.undo()


def test_drag_stroke_is_one_undo_step():
    editor = make_editor()
    editor.begin_stroke(DAY, "s1", "09:00", BARISTA)
    editor.extend_stroke(DAY, "s1", "09:15")
    editor.extend_stroke(DAY, "s1", "09:30")
    assert not editor.extend_stroke(DAY, "s2", "09:45")
    assert editor.end_stroke() == ["09:00", "09:15", "09:30"]
    assert len(editor.store) == 3
    editor.undo()
    assert len(editor.store) == 0


def test_painting_without_an_active_stroke_is_a_no_op():
    editor = make_editor()
    editor.paint(DAY, "s1", "09:00", BARISTA)
    assert not editor.stroke_active
    assert not editor.extend_stroke(DAY, "s1", "09:15")
    assert not editor._paint_cell("09:15")
    assert editor.end_stroke() == []
    assert list(editor.store.get_all()) == [encode(DAY, "s1", "09:00")]


def test_quick_fill_validates_before_mutating():
    editor = make_editor()
    with pytest.raises(ScheduleValidationError):
        editor.quick_fill(DAY, "s1", "10:00", "09:00", BARISTA)
    with pytest.raises(ScheduleValidationError):
        editor.quick_fill(DAY, "s1", "09:00", "10:00", ERASER)
    assert len(editor.store) == 0
    assert not editor.history.can_undo

    editor.quick_fill(DAY, "s1", "09:00", "10:30", FOH)
    assert len(editor.store) == 6


def test_apply_template_stops_at_end_time():
    editor = make_editor(interval=60)
    template = template_from_selection("Short", BARISTA, "09:00", "10:30")
    editor.apply_template(template, DAY, "s1")
    slots = sorted(key.rsplit("|", 1)[1] for key in editor.store.get_all())
    assert slots == ["09:00", "09:15", "09:30", "09:45", "10:00", "10:15"]


def test_delete_shift_removes_contiguous_same_role_run():
    initial = {
        encode(DAY, "s1", "09:00"): a(BARISTA),
        encode(DAY, "s1", "09:15"): a(BARISTA),
        encode(DAY, "s1", "09:30"): a(FOH),
        encode(DAY, "s1", "09:45"): a(FOH),
    }
    editor = make_editor(initial=initial)
    editor.delete_shift(DAY, "s1", "09:15")
    assert set(editor.store.get_all()) == {encode(DAY, "s1", "09:30"), encode(DAY, "s1", "09:45")}

    editor = make_editor(initial=initial)
    editor.delete_shift(DAY, "s1", "09:45")
    assert set(editor.store.get_all()) == {encode(DAY, "s1", "09:00"), encode(DAY, "s1", "09:15")}

    assert not editor.delete_shift(DAY, "s1", "12:00")


def test_paste_day_is_an_additive_merge():
    initial = {
        encode(DAY, "s1", "09:00"): a(BARISTA),
        encode(OTHER_DAY, "s1", "09:00"): a(FOH),
        encode(OTHER_DAY, "s2", "11:00"): a(FOH),
    }
    editor = make_editor(initial=initial)
    assert not editor.paste_day(OTHER_DAY)
    editor.copy_day(DAY)
    assert not editor.paste_day(DAY)
    assert editor.paste_day(OTHER_DAY)
    schedule = editor.store.get_all()
    assert schedule[encode(OTHER_DAY, "s1", "09:00")] == a(BARISTA)
    assert schedule[encode(OTHER_DAY, "s2", "11:00")] == a(FOH)


def test_clear_requires_confirmation():
    initial = {
        encode(DAY, "s1", "09:00"): a(BARISTA),
        encode(DAY, "s2", "09:00"): a(BARISTA),
        encode(OTHER_DAY, "s1", "09:00"): a(FOH),
    }
    editor = make_editor(initial=initial)
    with pytest.raises(ConfirmationRequiredError):
        editor.confirm_clear()

    pending = editor.request_clear_day(DAY)
    assert pending.slot_count == 2
    assert len(editor.store) == 3
    editor.cancel_clear()
    with pytest.raises(ConfirmationRequiredError):
        editor.confirm_clear()

    editor.request_clear_day(DAY)
    assert editor.confirm_clear()
    assert set(editor.store.get_all()) == {encode(OTHER_DAY, "s1", "09:00")}

    assert editor.request_clear_week().slot_count == 1
    editor.confirm_clear()
    assert len(editor.store) == 0
    editor.undo()
    editor.undo()
    assert len(editor.store) == 3


def test_template_from_selection_rejects_bad_range():
    with pytest.raises(ScheduleValidationError):
        template_from_selection("Broken", BARISTA, "12:00", "11:00")
    first = template_from_selection("Open", BARISTA, "06:30", "12:00")
    second = template_from_selection("Open", BARISTA, "06:30", "12:00")
    assert first.id != second.id
    assert first.role_code == "B"
