from __future__ import annotations

from roster.schemas import Staff


def ordered_staff(staff: list[Staff], order: list[str]) -> list[Staff]:
    """Active staff in column order; active staff missing from ``order`` go last."""
    active = {s.id: s for s in staff if s.active}
    ordered = [active[staff_id] for staff_id in order if staff_id in active]
    placed = {s.id for s in ordered}
    ordered.extend(s for s in staff if s.active and s.id not in placed)
    return ordered


def move_staff(order: list[str], dragged_id: str, target_id: str) -> list[str]:
    if dragged_id == target_id or dragged_id not in order or target_id not in order:
        return list(order)
    new_order = [staff_id for staff_id in order if staff_id != dragged_id]
    new_order.insert(order.index(target_id), dragged_id)
    return new_order


def order_after_archive(order: list[str], staff_id: str) -> list[str]:
    return [existing for existing in order if existing != staff_id]


def order_after_restore(order: list[str], staff_id: str) -> list[str]:
    return order if staff_id in order else [*order, staff_id]
