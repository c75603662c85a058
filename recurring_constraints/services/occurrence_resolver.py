import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from recurring_constraints.constants import ExceptionType, SourceCategory
from recurring_constraints.recurrence_utils import RecurrenceExpander, parse_time_of_day
from recurring_constraints.services.dataclasses import (
    DateWindow,
    OccurrenceData,
    OccurrenceExceptionData,
    RecurringSourceData,
)


logger = logging.getLogger(__name__)


ExceptionKey = tuple[SourceCategory, int, datetime.date]
ExceptionIndex = Mapping[ExceptionKey, OccurrenceExceptionData]


def index_exceptions_by_key(
    exceptions: Iterable[OccurrenceExceptionData] | ExceptionIndex,
) -> ExceptionIndex:
    """
    Build the ``(category, source_id, date) -> exception`` lookup used by the resolver.
    An already built index is returned as is. Later entries win on duplicate keys.
    """
    if isinstance(exceptions, Mapping):
        return exceptions
    return {exception.key: exception for exception in exceptions}


def occurrence_sort_key(occurrence: OccurrenceData):
    return (occurrence.start, occurrence.source_id, occurrence.source_category)


def sort_occurrences(occurrences: Iterable[OccurrenceData]) -> list[OccurrenceData]:
    return sorted(occurrences, key=occurrence_sort_key)


class OccurrenceResolver:
    """
    Resolves recurring sources and their exceptions into concrete occurrences.

    The resolver never writes anything: calendar views, the materialization sync
    and the busy interval aggregation all call it with the data they loaded.
    """

    def __init__(self, expander: RecurrenceExpander | None = None):
        self.expander = expander or RecurrenceExpander()

    def resolve(
        self,
        source: RecurringSourceData,
        window: DateWindow,
        exceptions: Iterable[OccurrenceExceptionData] | ExceptionIndex = (),
    ) -> list[OccurrenceData]:
        """
        Resolve one source over ``window``.

        Deleted occurrences are dropped, modified ones get their overlay applied
        and the others keep the source fields. Exceptions of other sources are ignored.
        """
        exceptions_by_key = index_exceptions_by_key(exceptions)
        occurrences = []
        for occurrence_date in self.expander.expand_source(source, window):
            exception = exceptions_by_key.get((source.category, source.id, occurrence_date))
            if exception is None:
                occurrences.append(self._build_occurrence(source, occurrence_date))
            elif exception.exception_type == ExceptionType.MODIFIED:
                occurrences.append(
                    self._build_modified_occurrence(
                        source, occurrence_date, exception.modified_fields or {}
                    )
                )
        return sort_occurrences(occurrences)

    def resolve_many(
        self,
        sources: Iterable[RecurringSourceData],
        window: DateWindow,
        exceptions: Iterable[OccurrenceExceptionData] | ExceptionIndex = (),
    ) -> list[OccurrenceData]:
        exceptions_by_key = index_exceptions_by_key(exceptions)
        occurrences = []
        for source in sources:
            occurrences.extend(self.resolve(source, window, exceptions_by_key))
        return sort_occurrences(occurrences)

    def _build_occurrence(
        self, source: RecurringSourceData, occurrence_date: datetime.date
    ) -> OccurrenceData:
        return OccurrenceData(
            source_category=source.category,
            source_id=source.id,
            occurrence_date=occurrence_date,
            start=datetime.datetime.combine(occurrence_date, source.start_time),
            end=datetime.datetime.combine(occurrence_date, source.end_time),
            title=source.title,
            fields=source.fields,
        )

    def _build_modified_occurrence(
        self,
        source: RecurringSourceData,
        occurrence_date: datetime.date,
        modified_fields: dict[str, Any],
    ) -> OccurrenceData:
        overlay = dict(modified_fields)
        start_time = parse_time_of_day(overlay.pop("start_time", source.start_time))
        end_time = parse_time_of_day(overlay.pop("end_time", source.end_time))

        if end_time <= start_time:
            # the parent was edited after the overlay was stored
            logger.warning(
                "Ignoring time overlay of %s source %s on %s: %s-%s is not a valid range",
                source.category,
                source.id,
                occurrence_date,
                start_time,
                end_time,
            )
            start_time, end_time = source.start_time, source.end_time

        fields = {**source.fields, **overlay}
        return OccurrenceData(
            source_category=source.category,
            source_id=source.id,
            occurrence_date=occurrence_date,
            start=datetime.datetime.combine(occurrence_date, start_time),
            end=datetime.datetime.combine(occurrence_date, end_time),
            title=fields.get("title", source.title),
            fields=fields,
            is_modified=True,
        )
