import datetime

import pytest

from recurring_constraints.constants import ExceptionType, SourceCategory
from recurring_constraints.exceptions import InvalidOccurrenceExceptionError
from recurring_constraints.services.dataclasses import (
    ActivityDetails,
    DateWindow,
    OccurrenceExceptionData,
    RecurringSourceData,
    WorkScheduleDetails,
)
from recurring_constraints.services.occurrence_resolver import (
    OccurrenceResolver,
    index_exceptions_by_key,
)


JANUARY_WINDOW = DateWindow(
    start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 15)
)


def _dt(day, hour, minute=0):
    return datetime.datetime(2024, 1, day, hour, minute)


@pytest.fixture
def resolver():
    return OccurrenceResolver()


@pytest.fixture
def work_source():
    return RecurringSourceData(
        id=1,
        category=SourceCategory.WORK,
        days_of_week=["monday"],
        start_time=datetime.time(9, 0),
        end_time=datetime.time(17, 0),
        title="Alternance",
        location="Lyon",
        details=WorkScheduleDetails(kind="alternance", company="ACME"),
    )


def _exception(source, day, exception_type, modified_fields=None):
    return OccurrenceExceptionData(
        source_category=source.category,
        source_id=source.id,
        exception_date=datetime.date(2024, 1, day),
        exception_type=exception_type,
        modified_fields=modified_fields,
    )


def test_resolve_without_exceptions(resolver, work_source):
    occurrences = resolver.resolve(work_source, JANUARY_WINDOW)

    assert [occurrence.start for occurrence in occurrences] == [
        _dt(1, 9),
        _dt(8, 9),
        _dt(15, 9),
    ]
    assert [occurrence.end for occurrence in occurrences] == [_dt(1, 17), _dt(8, 17), _dt(15, 17)]
    assert all(not occurrence.is_modified for occurrence in occurrences)
    assert occurrences[0].title == "Alternance"
    assert occurrences[0].fields == {
        "title": "Alternance",
        "location": "Lyon",
        "kind": "alternance",
        "company": "ACME",
    }


def test_resolve_drops_deleted_occurrences(resolver, work_source):
    exceptions = [_exception(work_source, 8, ExceptionType.DELETED)]

    occurrences = resolver.resolve(work_source, JANUARY_WINDOW, exceptions)

    assert [occurrence.occurrence_date for occurrence in occurrences] == [
        datetime.date(2024, 1, 1),
        datetime.date(2024, 1, 15),
    ]


def test_resolve_applies_modified_overlay(resolver, work_source):
    exceptions = [_exception(work_source, 8, ExceptionType.MODIFIED, {"end_time": "12:00"})]

    occurrences = resolver.resolve(work_source, JANUARY_WINDOW, exceptions)

    assert len(occurrences) == 3
    modified = occurrences[1]
    assert modified.is_modified
    assert modified.start == _dt(8, 9)
    assert modified.end == _dt(8, 12)
    assert modified.title == "Alternance"
    assert "end_time" not in modified.fields
    assert not occurrences[0].is_modified
    assert occurrences[2].end == _dt(15, 17)


def test_resolve_overlay_replaces_fields(resolver, work_source):
    exceptions = [
        _exception(
            work_source,
            15,
            ExceptionType.MODIFIED,
            {"title": "Alternance (remote)", "location": "Home", "start_time": "10:30"},
        )
    ]

    modified = resolver.resolve(work_source, JANUARY_WINDOW, exceptions)[-1]

    assert modified.title == "Alternance (remote)"
    assert modified.fields["location"] == "Home"
    assert modified.fields["company"] == "ACME"
    assert modified.start == _dt(15, 10, 30)
    assert modified.end == _dt(15, 17)


def test_resolve_ignores_invalid_time_overlay(resolver, work_source):
    exceptions = [_exception(work_source, 8, ExceptionType.MODIFIED, {"end_time": "08:00"})]

    modified = resolver.resolve(work_source, JANUARY_WINDOW, exceptions)[1]

    assert modified.is_modified
    assert modified.start == _dt(8, 9)
    assert modified.end == _dt(8, 17)


def test_resolve_ignores_exceptions_of_other_sources_and_dates(resolver, work_source):
    other_source = RecurringSourceData(
        id=2,
        category=SourceCategory.WORK,
        days_of_week=["monday"],
        start_time=datetime.time(18, 0),
        end_time=datetime.time(20, 0),
    )
    exceptions = [
        _exception(other_source, 8, ExceptionType.DELETED),
        # tuesday, never an occurrence date
        _exception(work_source, 9, ExceptionType.DELETED),
    ]

    occurrences = resolver.resolve(work_source, JANUARY_WINDOW, exceptions)

    assert len(occurrences) == 3


def test_resolve_matches_exceptions_on_category(resolver):
    activity = RecurringSourceData(
        id=1,
        category=SourceCategory.ACTIVITY,
        days_of_week=["monday"],
        start_time=datetime.time(18, 0),
        end_time=datetime.time(19, 0),
        details=ActivityDetails(kind="sport"),
    )
    # same source id, other category
    exceptions = [
        OccurrenceExceptionData(
            source_category=SourceCategory.WORK,
            source_id=1,
            exception_date=datetime.date(2024, 1, 8),
            exception_type=ExceptionType.DELETED,
        )
    ]

    assert len(resolver.resolve(activity, JANUARY_WINDOW, exceptions)) == 3


def test_resolve_empty_window(resolver, work_source):
    window = DateWindow(start_date=datetime.date(2024, 1, 15), end_date=datetime.date(2024, 1, 1))

    assert window.is_empty
    assert resolver.resolve(work_source, window) == []


def test_resolve_many_two_weekdays_and_sorting(resolver, work_source):
    evening_class = RecurringSourceData(
        id=7,
        category=SourceCategory.ACTIVITY,
        days_of_week=["monday", "wednesday"],
        start_time=datetime.time(7, 0),
        end_time=datetime.time(8, 0),
        title="Yoga",
        details=ActivityDetails(kind="sport"),
    )
    window = DateWindow(start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 14))

    occurrences = resolver.resolve_many([work_source, evening_class], window)

    assert len([o for o in occurrences if o.source_id == evening_class.id]) == 4
    assert [(o.start, o.source_id) for o in occurrences] == [
        (_dt(1, 7), 7),
        (_dt(1, 9), 1),
        (_dt(3, 7), 7),
        (_dt(8, 7), 7),
        (_dt(8, 9), 1),
        (_dt(10, 7), 7),
    ]


def test_resolve_is_deterministic(resolver, work_source):
    exceptions = [_exception(work_source, 8, ExceptionType.MODIFIED, {"title": "Late start"})]

    assert resolver.resolve(work_source, JANUARY_WINDOW, exceptions) == resolver.resolve(
        work_source, JANUARY_WINDOW, exceptions
    )


def test_index_exceptions_by_key_keeps_last_duplicate(work_source):
    first = _exception(work_source, 8, ExceptionType.DELETED)
    second = _exception(work_source, 8, ExceptionType.MODIFIED, {"title": "Moved"})

    index = index_exceptions_by_key([first, second])

    assert index == {(SourceCategory.WORK, 1, datetime.date(2024, 1, 8)): second}
    assert index_exceptions_by_key(index) is index


@pytest.mark.parametrize(
    "exception_type, modified_fields",
    [
        (ExceptionType.DELETED, {"title": "Nope"}),
        (ExceptionType.MODIFIED, None),
        (ExceptionType.MODIFIED, {}),
        (ExceptionType.MODIFIED, {"start_time": "noon"}),
        ("postponed", None),
    ],
)
def test_exception_data_rejects_inconsistent_pairs(exception_type, modified_fields):
    with pytest.raises(InvalidOccurrenceExceptionError):
        OccurrenceExceptionData(
            source_category=SourceCategory.WORK,
            source_id=1,
            exception_date=datetime.date(2024, 1, 8),
            exception_type=exception_type,
            modified_fields=modified_fields,
        )


def test_deleted_exception_normalizes_empty_overlay():
    exception = OccurrenceExceptionData(
        source_category=SourceCategory.WORK,
        source_id=1,
        exception_date=datetime.date(2024, 1, 8),
        exception_type=ExceptionType.DELETED,
        modified_fields={},
    )

    assert exception.modified_fields is None
