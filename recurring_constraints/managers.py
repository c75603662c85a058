from typing import TYPE_CHECKING

from common.managers import BaseUserScopedManager
from recurring_constraints.querysets import (
    MaterializedOccurrenceQuerySet,
    OccurrenceExceptionQuerySet,
    RecurringSourceQuerySet,
    TimedEventQuerySet,
)


if TYPE_CHECKING:
    from recurring_constraints.services.dataclasses import DateWindow


class RecurringSourceManager(BaseUserScopedManager):
    """
    Custom manager for RecurringSource model.
    """

    def get_queryset(self) -> RecurringSourceQuerySet:
        return RecurringSourceQuerySet(self.model, using=self._db)


class OccurrenceExceptionManager(BaseUserScopedManager):
    """
    Custom manager for OccurrenceException model.
    """

    def get_queryset(self) -> OccurrenceExceptionQuerySet:
        return OccurrenceExceptionQuerySet(self.model, using=self._db)

    def filter_in_window(self, window: "DateWindow"):
        return self.get_queryset().filter_in_window(window)


class MaterializedOccurrenceManager(BaseUserScopedManager):
    """
    Custom manager for MaterializedOccurrence model.
    """

    def get_queryset(self) -> MaterializedOccurrenceQuerySet:
        return MaterializedOccurrenceQuerySet(self.model, using=self._db)


class TimedEventManager(BaseUserScopedManager):
    """
    Manager shared by the one-off event models.
    """

    def get_queryset(self) -> TimedEventQuerySet:
        return TimedEventQuerySet(self.model, using=self._db)
