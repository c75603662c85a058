import datetime
from unittest.mock import patch

from django.db import DatabaseError

import pytest

from recurring_constraints.constants import ExceptionType, SourceCategory
from recurring_constraints.exceptions import MaterializationSyncError
from recurring_constraints.factories import RecurringSourceFactory
from recurring_constraints.models import MaterializationState, MaterializedOccurrence
from recurring_constraints.services.dataclasses import DateWindow, RecurringSourceData
from recurring_constraints.services.exception_store import ExceptionStore
from recurring_constraints.services.materialization_service import MaterializationSyncService
from recurring_constraints.services.occurrence_resolver import OccurrenceResolver


WINDOW = DateWindow(start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 15))


@pytest.fixture
def sync_service():
    return MaterializationSyncService(occurrence_resolver=OccurrenceResolver())


@pytest.fixture
def work_source(user):
    return RecurringSourceFactory.create_source(
        user, title="Alternance", meta={"kind": "alternance"}
    )


def _materialized_rows(user, category=SourceCategory.WORK):
    return list(
        MaterializedOccurrence.objects.filter_by_user(user.pk)
        .filter_by_category(category)
        .order_by_start()
        .values_list("occurrence_date", "start_time", "end_time", "is_modified")
    )


@pytest.mark.django_db
def test_sync_materializes_resolved_occurrences(sync_service, user, work_source):
    ExceptionStore(user).upsert(
        SourceCategory.WORK, work_source.pk, datetime.date(2024, 1, 8), ExceptionType.DELETED
    )

    result = sync_service.sync(user, SourceCategory.WORK, window=WINDOW)

    assert result.created_count == 2
    assert result.deleted_count == 0
    assert _materialized_rows(user) == [
        (datetime.date(2024, 1, 1), datetime.time(9, 0), datetime.time(17, 0), False),
        (datetime.date(2024, 1, 15), datetime.time(9, 0), datetime.time(17, 0), False),
    ]
    state = MaterializationState.objects.get(user=user, category=SourceCategory.WORK)
    assert state.window_start == WINDOW.start_date
    assert state.window_end == WINDOW.end_date
    assert state.occurrences_count == 2
    assert state.last_synced_at is not None


@pytest.mark.django_db
def test_sync_is_idempotent(sync_service, user, work_source):
    ExceptionStore(user).upsert(
        SourceCategory.WORK,
        work_source.pk,
        datetime.date(2024, 1, 8),
        ExceptionType.MODIFIED,
        {"end_time": "12:00"},
    )

    sync_service.sync(user, SourceCategory.WORK, window=WINDOW)
    first_rows = _materialized_rows(user)
    result = sync_service.sync(user, SourceCategory.WORK, window=WINDOW)

    assert _materialized_rows(user) == first_rows
    assert result.deleted_count == 3
    assert result.created_count == 3
    assert first_rows[1] == (
        datetime.date(2024, 1, 8),
        datetime.time(9, 0),
        datetime.time(12, 0),
        True,
    )


@pytest.mark.django_db
def test_sync_matches_resolve_many(sync_service, user, work_source):
    RecurringSourceFactory.create_source(
        user,
        days_of_week=["monday", "wednesday"],
        start_time=datetime.time(18, 0),
        end_time=datetime.time(20, 0),
        title="Student job",
    )
    store = ExceptionStore(user)
    store.upsert(
        SourceCategory.WORK,
        work_source.pk,
        datetime.date(2024, 1, 15),
        ExceptionType.MODIFIED,
        {"title": "Remote day", "start_time": "10:00"},
    )
    sources = [
        source.to_source_data() for source in work_source.user.recurring_sources.order_by("pk")
    ]
    expected = OccurrenceResolver().resolve_many(
        sources, WINDOW, store.list_for_window(SourceCategory.WORK, WINDOW)
    )

    sync_service.sync(user, SourceCategory.WORK, window=WINDOW)

    assert sync_service.get_materialized_occurrences(user, SourceCategory.WORK) == expected


@pytest.mark.django_db
def test_sync_only_replaces_its_category(sync_service, user, work_source):
    RecurringSourceFactory.create_source(
        user,
        category=SourceCategory.ROUTINE,
        days_of_week=["sunday"],
        start_time=datetime.time(12, 0),
        end_time=datetime.time(13, 0),
        title="Family lunch",
    )
    sync_service.sync(user, SourceCategory.ROUTINE, window=WINDOW)
    sync_service.sync(user, SourceCategory.WORK, window=WINDOW)
    work_source.delete()

    result = sync_service.sync(user, SourceCategory.WORK, window=WINDOW)

    assert result.created_count == 0
    assert _materialized_rows(user) == []
    assert len(_materialized_rows(user, SourceCategory.ROUTINE)) == 2


@pytest.mark.django_db
def test_sync_rolls_back_on_insert_failure(sync_service, user, work_source):
    sync_service.sync(user, SourceCategory.WORK, window=WINDOW)
    rows_before = _materialized_rows(user)
    ExceptionStore(user).upsert(
        SourceCategory.WORK, work_source.pk, datetime.date(2024, 1, 1), ExceptionType.DELETED
    )

    with (
        patch.object(
            MaterializedOccurrence.objects,
            "bulk_create",
            side_effect=DatabaseError("disk full"),
        ),
        pytest.raises(MaterializationSyncError) as exc_info,
    ):
        sync_service.sync(user, SourceCategory.WORK, window=WINDOW)

    assert isinstance(exc_info.value.__cause__, DatabaseError)
    assert _materialized_rows(user) == rows_before
    assert MaterializationState.objects.get(user=user).occurrences_count == 3


@pytest.mark.django_db
def test_sync_rejects_sources_of_another_category(sync_service, user, work_source):
    activity = RecurringSourceData(
        id=999,
        category=SourceCategory.ACTIVITY,
        days_of_week=["monday"],
        start_time=datetime.time(18, 0),
        end_time=datetime.time(19, 0),
    )

    with pytest.raises(MaterializationSyncError):
        sync_service.sync(user, SourceCategory.WORK, sources=[activity], window=WINDOW)

    assert not MaterializedOccurrence.objects.exists()


@pytest.mark.django_db
def test_sync_with_explicit_sources(sync_service, user, work_source):
    result = sync_service.sync(
        user, SourceCategory.WORK, sources=[work_source.to_source_data()], window=WINDOW
    )

    assert result.created_count == 3


@pytest.mark.django_db
def test_sync_all_covers_every_category(sync_service, user, work_source):
    results = sync_service.sync_all(user)

    assert [result.category for result in results] == list(SourceCategory)
    assert MaterializationState.objects.filter(user=user).count() == len(SourceCategory)


def test_get_horizon_window_uses_category_overrides():
    service = MaterializationSyncService(
        occurrence_resolver=OccurrenceResolver(),
        horizon_months=3,
        horizon_months_by_category={"routine": 1},
    )
    today = datetime.date(2024, 1, 31)

    assert service.get_horizon_window(SourceCategory.WORK, today) == DateWindow(
        start_date=today, end_date=datetime.date(2024, 4, 30)
    )
    assert service.get_horizon_window(SourceCategory.ROUTINE, today) == DateWindow(
        start_date=today, end_date=datetime.date(2024, 2, 29)
    )


@pytest.mark.django_db
def test_get_materialized_occurrences_filters_window(sync_service, user, work_source):
    sync_service.sync(user, SourceCategory.WORK, window=WINDOW)

    occurrences = sync_service.get_materialized_occurrences(
        user,
        window=DateWindow(start_date=datetime.date(2024, 1, 2), end_date=datetime.date(2024, 1, 9)),
    )

    assert [occurrence.occurrence_date for occurrence in occurrences] == [
        datetime.date(2024, 1, 8)
    ]
    assert occurrences[0].fields == {"title": "Alternance", "location": "", "kind": "alternance"}
