from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from roster.slots import SEPARATOR, decode


@dataclass(frozen=True)
class Assignment:
    """Role occupying one slot.

    Code and color are copied from the role at paint time so later role edits
    never rewrite past rosters.
    """

    role_id: str
    role_code: str
    role_color: str

    def to_dict(self) -> dict[str, str]:
        return {"roleId": self.role_id, "roleCode": self.role_code, "roleColor": self.role_color}

    @classmethod
    def from_dict(cls, data: Mapping[str, str]) -> Assignment:
        return cls(role_id=data["roleId"], role_code=data["roleCode"], role_color=data["roleColor"])


ScheduleMap = Mapping[str, Assignment]
Listener = Callable[[ScheduleMap], None]


class ScheduleStore:
    """Sparse slot key -> Assignment map with value semantics.

    Every mutation swaps in a new dict, so a state handed out earlier (to the
    history or to a pending save) never changes underneath its holder.
    """

    def __init__(self, initial: ScheduleMap | None = None) -> None:
        self._state: dict[str, Assignment] = dict(initial or {})
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._state)

    def __contains__(self, key: object) -> bool:
        return key in self._state

    def get(self, key: str) -> Assignment | None:
        return self._state.get(key)

    def get_all(self) -> ScheduleMap:
        return MappingProxyType(self._state)

    def set(self, key: str, assignment: Assignment) -> None:
        if self._state.get(key) == assignment:
            return
        self._commit({**self._state, key: assignment})

    def delete(self, key: str) -> None:
        if key not in self._state:
            return
        new_state = dict(self._state)
        del new_state[key]
        self._commit(new_state)

    def replace_all(self, new_map: ScheduleMap) -> None:
        self._commit(dict(new_map))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _commit(self, new_state: dict[str, Assignment]) -> None:
        self._state = new_state
        snapshot = self.get_all()
        for listener in list(self._listeners):
            listener(snapshot)


@dataclass
class ScheduleDelta:
    upserts: dict[str, Assignment] = field(default_factory=dict)
    deletes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.upserts and not self.deletes


def compute_delta(desired: ScheduleMap, baseline: ScheduleMap) -> ScheduleDelta:
    """Upserts for keys new or changed in ``desired``; deletes for keys it dropped."""
    delta = ScheduleDelta()
    for key, assignment in desired.items():
        if baseline.get(key) != assignment:
            delta.upserts[key] = assignment
    delta.deletes = [key for key in baseline if key not in desired]
    return delta


def apply_delta(baseline: ScheduleMap, delta: ScheduleDelta) -> dict[str, Assignment]:
    removed = set(delta.deletes)
    result = {key: value for key, value in baseline.items() if key not in removed}
    result.update(delta.upserts)
    return result


def schedule_to_json(schedule: ScheduleMap) -> dict[str, dict[str, str]]:
    return {key: assignment.to_dict() for key, assignment in schedule.items()}


def schedule_from_json(data: Mapping[str, Mapping[str, str]]) -> dict[str, Assignment]:
    schedule: dict[str, Assignment] = {}
    for key, value in data.items():
        decode(key)
        schedule[key] = Assignment.from_dict(value)
    return schedule


def keys_for(schedule: ScheduleMap, date_key: str, staff_id: str | None = None) -> Iterable[str]:
    prefix = f"{date_key}{SEPARATOR}" if staff_id is None else f"{date_key}{SEPARATOR}{staff_id}{SEPARATOR}"
    return (key for key in schedule if key.startswith(prefix))
