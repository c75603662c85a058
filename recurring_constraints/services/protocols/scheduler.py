from collections.abc import Sequence
from typing import Any, Protocol

from recurring_constraints.services.dataclasses import BusyInterval


class Scheduler(Protocol):
    """
    External revision scheduler. It receives the busy intervals already sorted
    and capped; exams and profile are passed through untouched.
    """

    def plan(
        self,
        exams: Sequence[Any],
        busy_intervals: Sequence[BusyInterval],
        profile: Any,
    ) -> Any:
        """
        Propose revision sessions that avoid every busy interval.
        :param exams: Exams to revise for, opaque to the engine.
        :param busy_intervals: Sorted busy intervals of the planning window.
        :param profile: User profile, opaque to the engine.
        :return: Whatever the scheduler proposes.
        """
        ...
