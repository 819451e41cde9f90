from __future__ import annotations

from roster.store import Assignment, ScheduleMap

MAX_SNAPSHOTS = 50

Snapshot = dict[str, Assignment]


class HistoryManager:
    """Bounded undo/redo over schedule snapshots.

    Edits record the state *before* they apply. The live state after the most
    recent edit is only captured when the first undo happens, which is what
    lets redo walk back up to it.
    """

    def __init__(self, limit: int = MAX_SNAPSHOTS) -> None:
        self.limit = limit
        self.snapshots: list[Snapshot] = []
        self.index = -1
        self._live_ahead = False

    def record(self, current_state: ScheduleMap) -> None:
        del self.snapshots[self.index + 1:]
        if self._live_ahead or not self.snapshots:
            # Assignments are frozen, so a dict copy is a deep copy.
            self.snapshots.append(dict(current_state))
            self.index = len(self.snapshots) - 1
            self._trim()
        # else the live state is already snapshots[index] after an undo/redo
        self._live_ahead = True

    def undo(self, current_state: ScheduleMap) -> Snapshot | None:
        if self._live_ahead:
            self.snapshots.append(dict(current_state))
            self._live_ahead = False
            self._trim()
            return dict(self.snapshots[self.index])
        if self.index > 0:
            self.index -= 1
            return dict(self.snapshots[self.index])
        return None

    def redo(self) -> Snapshot | None:
        if self._live_ahead:
            return None
        if self.index < len(self.snapshots) - 1:
            self.index += 1
            return dict(self.snapshots[self.index])
        return None

    @property
    def can_undo(self) -> bool:
        return self._live_ahead or self.index > 0

    @property
    def can_redo(self) -> bool:
        return not self._live_ahead and self.index < len(self.snapshots) - 1

    def clear(self) -> None:
        self.snapshots.clear()
        self.index = -1
        self._live_ahead = False

    def _trim(self) -> None:
        overflow = len(self.snapshots) - self.limit
        if overflow > 0:
            del self.snapshots[:overflow]
            self.index = max(0, self.index - overflow)
