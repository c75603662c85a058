import datetime

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

import pytest
from model_bakery import baker

from recurring_constraints.constants import ExceptionType, SourceCategory
from recurring_constraints.factories import RecurringSourceFactory
from recurring_constraints.models import (
    CalendarEvent,
    MaterializedOccurrence,
    OccurrenceException,
    PlannedEvent,
    RecurringSource,
)
from recurring_constraints.services.dataclasses import (
    DateWindow,
    OccurrenceData,
    WorkScheduleDetails,
)


@pytest.mark.django_db
class TestRecurringSource:
    def test_clean_normalizes_days_of_week(self, user):
        source = RecurringSource(
            user=user,
            category=SourceCategory.ACTIVITY,
            days_of_week=["vendredi", "lundi"],
            start_time=datetime.time(18, 0),
            end_time=datetime.time(19, 0),
        )

        source.full_clean()

        assert source.days_of_week == ["monday", "friday"]

    def test_clean_rejects_unknown_days(self, user):
        source = RecurringSource(
            user=user,
            category=SourceCategory.ACTIVITY,
            days_of_week=["someday"],
            start_time=datetime.time(18, 0),
            end_time=datetime.time(19, 0),
        )

        with pytest.raises(ValidationError) as exc_info:
            source.full_clean()

        assert "days_of_week" in exc_info.value.message_dict

    def test_clean_rejects_crossing_midnight(self, user):
        source = RecurringSource(
            user=user,
            category=SourceCategory.ROUTINE,
            days_of_week=["monday"],
            start_time=datetime.time(23, 0),
            end_time=datetime.time(1, 0),
        )

        with pytest.raises(ValidationError) as exc_info:
            source.full_clean()

        assert "end_time" in exc_info.value.message_dict

    def test_to_source_data(self, user):
        source = RecurringSourceFactory.create_source(
            user,
            title="Job",
            meta={"kind": "job", "hours_per_week": 12, "contract": "CDD"},
        )

        data = source.to_source_data()

        assert data.id == source.pk
        assert data.category == SourceCategory.WORK
        assert data.details == WorkScheduleDetails(
            kind="job", hours_per_week=12, extra={"contract": "CDD"}
        )
        assert data.fields == {
            "title": "Job",
            "location": "",
            "kind": "job",
            "hours_per_week": 12,
            "contract": "CDD",
        }

    def test_user_scoped_manager(self, user, other_user):
        mine = RecurringSourceFactory.create_source(user)
        RecurringSourceFactory.create_source(other_user)

        assert list(RecurringSource.objects.filter_by_user(user.pk)) == [mine]


@pytest.mark.django_db
class TestOccurrenceException:
    def test_unique_per_source_and_date(self, user):
        source = RecurringSourceFactory.create_source(user)
        RecurringSourceFactory.create_exception(source, datetime.date(2024, 1, 8))

        with pytest.raises(IntegrityError), transaction.atomic():
            RecurringSourceFactory.create_exception(source, datetime.date(2024, 1, 8))

    def test_filter_in_window(self, user):
        source = RecurringSourceFactory.create_source(user)
        inside = RecurringSourceFactory.create_exception(source, datetime.date(2024, 1, 8))
        RecurringSourceFactory.create_exception(source, datetime.date(2024, 2, 5))
        window = DateWindow(
            start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 8)
        )

        assert list(OccurrenceException.objects.filter_in_window(window)) == [inside]

    def test_to_exception_data(self, user):
        source = RecurringSourceFactory.create_source(user)
        exception = RecurringSourceFactory.create_exception(
            source,
            datetime.date(2024, 1, 8),
            exception_type=ExceptionType.MODIFIED,
            modified_fields={"title": "Short day"},
        )

        data = exception.to_exception_data()

        assert data.id == exception.pk
        assert data.key == (SourceCategory.WORK, source.pk, datetime.date(2024, 1, 8))
        assert data.modified_fields == {"title": "Short day"}


@pytest.mark.django_db
def test_materialized_occurrence_round_trip(user):
    source = RecurringSourceFactory.create_source(user)
    occurrence = OccurrenceData(
        source_category=SourceCategory.WORK,
        source_id=source.pk,
        occurrence_date=datetime.date(2024, 1, 8),
        start=datetime.datetime(2024, 1, 8, 9, 0),
        end=datetime.datetime(2024, 1, 8, 12, 0),
        title="Half day",
        fields={"title": "Half day", "location": ""},
        is_modified=True,
    )

    row = MaterializedOccurrence.from_occurrence_data(user, occurrence)
    row.save()
    row.refresh_from_db()

    assert row.to_occurrence_data() == occurrence


@pytest.mark.django_db
@pytest.mark.parametrize("model", [CalendarEvent, PlannedEvent])
def test_timed_events_overlapping_window(user, model):
    window = DateWindow(start_date=datetime.date(2024, 1, 2), end_date=datetime.date(2024, 1, 2))
    overlapping = baker.make(
        model,
        user=user,
        start_time=datetime.datetime(2024, 1, 1, 23, 0),
        end_time=datetime.datetime(2024, 1, 2, 1, 0),
    )
    baker.make(
        model,
        user=user,
        start_time=datetime.datetime(2024, 1, 3, 0, 0),
        end_time=datetime.datetime(2024, 1, 3, 2, 0),
    )

    events = model.objects.filter_by_user(user.pk).filter_overlapping_window(window)

    assert list(events) == [overlapping]
    assert events.first().to_timed_event_data().source_tag == model.busy_interval_source


@pytest.mark.django_db
def test_timed_event_clean_rejects_inverted_range(user):
    event = CalendarEvent(
        user=user,
        start_time=datetime.datetime(2024, 1, 2, 10, 0),
        end_time=datetime.datetime(2024, 1, 2, 9, 0),
    )

    with pytest.raises(ValidationError):
        event.full_clean()
