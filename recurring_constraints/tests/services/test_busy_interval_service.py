import datetime
from unittest.mock import Mock, patch

import pytest
from model_bakery import baker

from recurring_constraints.constants import BusyIntervalSource, ExceptionType, SourceCategory
from recurring_constraints.factories import RecurringSourceFactory
from recurring_constraints.models import CalendarEvent, PlannedEvent
from recurring_constraints.services.busy_interval_service import (
    BusyIntervalAggregator,
    BusyIntervalService,
    merge_busy_intervals,
)
from recurring_constraints.services.dataclasses import (
    BusyInterval,
    DateWindow,
    OccurrenceExceptionData,
    RecurringSourceData,
    TimedEventData,
)
from recurring_constraints.services.exception_store import ExceptionStore
from recurring_constraints.services.occurrence_resolver import OccurrenceResolver


WINDOW = DateWindow(start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 14))


def _dt(day, hour, minute=0):
    return datetime.datetime(2024, 1, day, hour, minute)


def _source(source_id, category, days, start_hour, end_hour, title=""):
    return RecurringSourceData(
        id=source_id,
        category=category,
        days_of_week=days,
        start_time=datetime.time(start_hour),
        end_time=datetime.time(end_hour),
        title=title,
    )


@pytest.fixture
def sources_by_category():
    return {
        SourceCategory.WORK: [_source(1, SourceCategory.WORK, ["monday"], 9, 17, "Alternance")],
        SourceCategory.ACTIVITY: [
            _source(2, SourceCategory.ACTIVITY, ["wednesday"], 18, 20, "Football")
        ],
        SourceCategory.ROUTINE: [
            _source(3, SourceCategory.ROUTINE, ["monday", "wednesday"], 7, 8, "Breakfast")
        ],
    }


def test_aggregate_sorts_all_categories(sources_by_category):
    result = BusyIntervalAggregator(max_intervals=None).aggregate(WINDOW, sources_by_category)

    assert result.total_count == 8
    assert not result.truncated
    assert [(interval.start, interval.source_tag) for interval in result.intervals[:4]] == [
        (_dt(1, 7), BusyIntervalSource.ROUTINE),
        (_dt(1, 9), BusyIntervalSource.WORK),
        (_dt(3, 7), BusyIntervalSource.ROUTINE),
        (_dt(3, 18), BusyIntervalSource.ACTIVITY),
    ]


def test_aggregate_applies_exceptions(sources_by_category):
    exceptions = [
        OccurrenceExceptionData(
            source_category=SourceCategory.WORK,
            source_id=1,
            exception_date=datetime.date(2024, 1, 8),
            exception_type=ExceptionType.DELETED,
        ),
        OccurrenceExceptionData(
            source_category=SourceCategory.ACTIVITY,
            source_id=2,
            exception_date=datetime.date(2024, 1, 3),
            exception_type=ExceptionType.MODIFIED,
            modified_fields={"end_time": "21:30"},
        ),
    ]

    result = BusyIntervalAggregator().aggregate(WINDOW, sources_by_category, exceptions=exceptions)

    work = [i for i in result.intervals if i.source_tag == BusyIntervalSource.WORK]
    football = [i for i in result.intervals if i.source_tag == BusyIntervalSource.ACTIVITY]
    assert [interval.start for interval in work] == [_dt(1, 9)]
    assert football[0].end == _dt(3, 21, 30)


def test_aggregate_keeps_one_off_events_overlapping_the_window():
    window = DateWindow(start_date=datetime.date(2024, 1, 2), end_date=datetime.date(2024, 1, 2))
    events = [
        # ends exactly when the window starts
        TimedEventData(
            id=1, source_tag=BusyIntervalSource.CALENDAR_EVENT, start=_dt(1, 22), end=_dt(2, 0)
        ),
        # starts the day before, ends inside
        TimedEventData(
            id=2, source_tag=BusyIntervalSource.CALENDAR_EVENT, start=_dt(1, 23), end=_dt(2, 1)
        ),
        TimedEventData(
            id=3, source_tag=BusyIntervalSource.CALENDAR_EVENT, start=_dt(2, 10), end=_dt(2, 11)
        ),
        # starts exactly when the window ends
        TimedEventData(
            id=4, source_tag=BusyIntervalSource.CALENDAR_EVENT, start=_dt(3, 0), end=_dt(3, 1)
        ),
    ]
    planned = [
        TimedEventData(
            id=5, source_tag=BusyIntervalSource.PLANNED_EVENT, start=_dt(2, 14), end=_dt(2, 16)
        ),
    ]

    result = BusyIntervalAggregator().aggregate(
        window, {}, one_off_events=events, planned_events=planned
    )

    assert [(interval.source_tag, interval.source_id) for interval in result.intervals] == [
        (BusyIntervalSource.CALENDAR_EVENT, 2),
        (BusyIntervalSource.CALENDAR_EVENT, 3),
        (BusyIntervalSource.PLANNED_EVENT, 5),
    ]


def test_aggregate_cap_keeps_earliest_intervals(sources_by_category):
    result = BusyIntervalAggregator(max_intervals=3).aggregate(WINDOW, sources_by_category)

    assert result.truncated
    assert result.total_count == 8
    assert [interval.start for interval in result.intervals] == [
        _dt(1, 7),
        _dt(1, 9),
        _dt(3, 7),
    ]


def test_aggregate_cap_not_reached(sources_by_category):
    result = BusyIntervalAggregator(max_intervals=8).aggregate(WINDOW, sources_by_category)

    assert not result.truncated
    assert len(result.intervals) == 8


def test_aggregate_keeps_overlapping_intervals():
    sources = {
        SourceCategory.WORK: [_source(1, SourceCategory.WORK, ["monday"], 9, 17)],
        SourceCategory.ACTIVITY: [_source(2, SourceCategory.ACTIVITY, ["monday"], 16, 18)],
    }
    window = DateWindow(start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 1))

    result = BusyIntervalAggregator().aggregate(window, sources)

    assert len(result.intervals) == 2


def test_aggregate_empty_window(sources_by_category):
    window = DateWindow(start_date=datetime.date(2024, 1, 14), end_date=datetime.date(2024, 1, 1))
    events = [
        TimedEventData(
            id=1, source_tag=BusyIntervalSource.CALENDAR_EVENT, start=_dt(5, 9), end=_dt(5, 10)
        )
    ]

    result = BusyIntervalAggregator().aggregate(window, sources_by_category, one_off_events=events)

    assert result.intervals == []
    assert result.total_count == 0


def test_merge_busy_intervals():
    intervals = [
        BusyInterval(start=_dt(1, 16), end=_dt(1, 18), source_tag="activity", source_id=2),
        BusyInterval(start=_dt(1, 9), end=_dt(1, 17), source_tag="work", source_id=1),
        BusyInterval(start=_dt(1, 18), end=_dt(1, 19), source_tag="routine", source_id=3),
        BusyInterval(start=_dt(2, 9), end=_dt(2, 10), source_tag="work", source_id=1),
    ]

    assert merge_busy_intervals(intervals) == [
        (_dt(1, 9), _dt(1, 19)),
        (_dt(2, 9), _dt(2, 10)),
    ]


@pytest.mark.django_db
class TestBusyIntervalService:
    @pytest.fixture
    def service(self):
        return BusyIntervalService(occurrence_resolver=OccurrenceResolver(), max_intervals=5)

    @pytest.fixture
    def stored_constraints(self, user):
        work = RecurringSourceFactory.create_source(
            user, days_of_week=["monday", "tuesday"], title="Job"
        )
        RecurringSourceFactory.create_exception(work, datetime.date(2024, 1, 2))
        baker.make(
            CalendarEvent, user=user, title="Dentist", start_time=_dt(3, 10), end_time=_dt(3, 11)
        )
        baker.make(
            PlannedEvent, user=user, title="Maths", start_time=_dt(4, 14), end_time=_dt(4, 16)
        )
        # outside of the window
        baker.make(CalendarEvent, user=user, start_time=_dt(20, 10), end_time=_dt(20, 11))
        return work

    def test_get_busy_intervals(self, service, user, stored_constraints):
        result = service.get_busy_intervals(user, WINDOW)

        # Job: Jan 1, 8, 9 (Jan 2 cancelled), plus the two one-off events
        assert result.total_count == 5
        assert not result.truncated
        assert [interval.source_tag for interval in result.intervals] == [
            BusyIntervalSource.WORK,
            BusyIntervalSource.CALENDAR_EVENT,
            BusyIntervalSource.PLANNED_EVENT,
            BusyIntervalSource.WORK,
            BusyIntervalSource.WORK,
        ]

    def test_get_busy_intervals_loads_exceptions_from_store(
        self, service, user, stored_constraints
    ):
        list_for_window = ExceptionStore.list_for_window
        with patch.object(
            ExceptionStore, "list_for_window", autospec=True, side_effect=list_for_window
        ) as list_mock:
            result = service.get_busy_intervals(user, WINDOW)

        list_mock.assert_called_once()
        assert list_mock.call_args.args[1:] == (None, WINDOW)
        assert datetime.date(2024, 1, 2) not in [
            interval.start.date() for interval in result.intervals
        ]

    def test_get_busy_intervals_ignores_other_users(self, service, other_user, stored_constraints):
        result = service.get_busy_intervals(other_user, WINDOW)

        assert result.intervals == []

    def test_caller_can_lower_cap(self, service, user, stored_constraints):
        result = service.get_busy_intervals(user, WINDOW, max_intervals=2)

        assert result.truncated
        assert len(result.intervals) == 2
        assert result.intervals[0].start == _dt(1, 9)

    def test_caller_cannot_raise_cap(self, service, user, stored_constraints):
        RecurringSourceFactory.create_source(
            user,
            category=SourceCategory.ROUTINE,
            days_of_week=["sunday"],
            start_time=datetime.time(20, 0),
            end_time=datetime.time(21, 0),
        )

        result = service.get_busy_intervals(user, WINDOW, max_intervals=100)

        assert result.total_count == 7
        assert len(result.intervals) == 5
        assert result.truncated

    def test_plan_hands_intervals_to_scheduler(self, service, user, stored_constraints):
        scheduler = Mock()
        scheduler.plan.return_value = ["session"]
        exams = [Mock(name="exam")]
        profile = Mock(name="profile")

        planned = service.plan(user, WINDOW, exams=exams, profile=profile, scheduler=scheduler)

        assert planned == ["session"]
        scheduler.plan.assert_called_once()
        kwargs = scheduler.plan.call_args.kwargs
        assert kwargs["exams"] is exams
        assert kwargs["profile"] is profile
        assert len(kwargs["busy_intervals"]) == 5
