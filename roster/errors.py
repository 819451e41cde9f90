from __future__ import annotations


class ScheduleValidationError(ValueError):
    """Rejected edit; the schedule store is left untouched."""


class PersistenceError(RuntimeError):
    """A remote schedule read or write failed."""


class ConfirmationRequiredError(RuntimeError):
    """A destructive edit was confirmed without a pending request."""
