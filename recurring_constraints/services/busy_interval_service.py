import datetime
import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from itertools import chain
from typing import Annotated, Any

from dependency_injector.wiring import Provide, inject

from recurring_constraints.constants import DEFAULT_BUSY_INTERVALS_MAX_COUNT
from recurring_constraints.models import (
    CalendarEvent,
    PlannedEvent,
    RecurringSource,
)
from recurring_constraints.services.dataclasses import (
    BusyInterval,
    BusyIntervalResult,
    DateWindow,
    OccurrenceExceptionData,
    RecurringSourceData,
    TimedEventData,
)
from recurring_constraints.services.exception_store import ExceptionStore
from recurring_constraints.services.occurrence_resolver import OccurrenceResolver
from recurring_constraints.services.protocols.scheduler import Scheduler


logger = logging.getLogger(__name__)


def busy_interval_sort_key(interval: BusyInterval):
    return (interval.start, interval.end, interval.source_tag, interval.source_id)


def merge_busy_intervals(
    intervals: Iterable[BusyInterval],
) -> list[tuple[datetime.datetime, datetime.datetime]]:
    """
    Union of the given intervals as sorted, non-overlapping (start, end) pairs.
    Touching intervals are merged too.
    """
    merged: list[tuple[datetime.datetime, datetime.datetime]] = []
    for interval in sorted(intervals, key=busy_interval_sort_key):
        if merged and interval.start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], interval.end))
        else:
            merged.append((interval.start, interval.end))
    return merged


class BusyIntervalAggregator:
    """
    Builds the busy interval list handed to the scheduler: every resolved recurring
    occurrence plus every one-off event intersecting the window, sorted and capped.

    Intervals are not merged; overlapping blocks are all kept.
    """

    def __init__(
        self,
        occurrence_resolver: OccurrenceResolver | None = None,
        max_intervals: int | None = DEFAULT_BUSY_INTERVALS_MAX_COUNT,
    ):
        self.occurrence_resolver = occurrence_resolver or OccurrenceResolver()
        self.max_intervals = max_intervals

    def aggregate(
        self,
        window: DateWindow,
        sources_by_category: Mapping[str, Iterable[RecurringSourceData]],
        one_off_events: Iterable[TimedEventData] = (),
        planned_events: Iterable[TimedEventData] = (),
        exceptions: Iterable[OccurrenceExceptionData] = (),
    ) -> BusyIntervalResult:
        occurrences = self.occurrence_resolver.resolve_many(
            chain.from_iterable(sources_by_category.values()), window, exceptions
        )
        intervals = [BusyInterval.from_occurrence(occurrence) for occurrence in occurrences]
        intervals.extend(
            BusyInterval.from_timed_event(event)
            for event in chain(one_off_events, planned_events)
            if window.overlaps(event.start, event.end)
        )
        intervals.sort(key=busy_interval_sort_key)

        total_count = len(intervals)
        # cap after sorting so the earliest intervals are kept
        if self.max_intervals is not None:
            intervals = intervals[: self.max_intervals]

        return BusyIntervalResult(
            intervals=intervals,
            total_count=total_count,
            truncated=len(intervals) < total_count,
        )


class BusyIntervalService:
    """
    Loads the recurring sources, exceptions and one-off events of a user and runs
    them through ``BusyIntervalAggregator``.
    """

    @inject
    def __init__(
        self,
        occurrence_resolver: Annotated[
            "OccurrenceResolver | None", Provide["occurrence_resolver"]
        ] = None,
        max_intervals: int | None = DEFAULT_BUSY_INTERVALS_MAX_COUNT,
    ) -> None:
        self.occurrence_resolver = occurrence_resolver or OccurrenceResolver()
        self.max_intervals = max_intervals

    def _get_cap(self, max_intervals: int | None) -> int | None:
        # callers may lower the configured cap, never raise it
        if max_intervals is None:
            return self.max_intervals
        if self.max_intervals is None:
            return max_intervals
        return min(max_intervals, self.max_intervals)

    def get_busy_intervals(
        self, user, window: DateWindow, max_intervals: int | None = None
    ) -> BusyIntervalResult:
        sources_by_category: dict[str, list[RecurringSourceData]] = defaultdict(list)
        for source in RecurringSource.objects.filter_by_user(user.pk).order_by("pk"):
            sources_by_category[source.category].append(source.to_source_data())

        exceptions = ExceptionStore(user).list_for_window(None, window)
        one_off_events = [
            event.to_timed_event_data()
            for event in CalendarEvent.objects.filter_by_user(user.pk).filter_overlapping_window(
                window
            )
        ]
        planned_events = [
            event.to_timed_event_data()
            for event in PlannedEvent.objects.filter_by_user(user.pk).filter_overlapping_window(
                window
            )
        ]

        aggregator = BusyIntervalAggregator(
            occurrence_resolver=self.occurrence_resolver,
            max_intervals=self._get_cap(max_intervals),
        )
        result = aggregator.aggregate(
            window,
            sources_by_category,
            one_off_events=one_off_events,
            planned_events=planned_events,
            exceptions=exceptions,
        )
        if result.truncated:
            logger.warning(
                "Busy intervals of user %s truncated to %s of %s between %s and %s",
                user.pk,
                len(result.intervals),
                result.total_count,
                window.start_date,
                window.end_date,
            )
        return result

    def plan(
        self,
        user,
        window: DateWindow,
        exams: Sequence[Any],
        profile: Any,
        scheduler: Scheduler,
    ) -> Any:
        """
        Aggregate the busy intervals of ``window`` and hand them to ``scheduler``.
        The scheduler is only called once aggregation has returned.
        """
        result = self.get_busy_intervals(user, window)
        logger.info(
            "Planning revisions of user %s with %s busy intervals", user.pk, len(result.intervals)
        )
        return scheduler.plan(exams=exams, busy_intervals=result.intervals, profile=profile)
