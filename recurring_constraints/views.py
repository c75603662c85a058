import datetime
from typing import Annotated

from django.http import Http404

from dependency_injector.wiring import Provide, inject
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from common.utils.view_utils import RevisionPlannerModelViewSet
from recurring_constraints.exceptions import RecurringConstraintsError
from recurring_constraints.filtersets import (
    CalendarEventFilterSet,
    PlannedEventFilterSet,
    RecurringSourceFilterSet,
)
from recurring_constraints.models import CalendarEvent, PlannedEvent, RecurringSource
from recurring_constraints.serializers import (
    BusyIntervalResultSerializer,
    BusyIntervalsQuerySerializer,
    CalendarEventSerializer,
    DateWindowQuerySerializer,
    OccurrenceExceptionInputSerializer,
    OccurrenceExceptionSerializer,
    OccurrenceSerializer,
    OccurrencesQuerySerializer,
    PlannedEventSerializer,
    RecurringSourceSerializer,
)
from recurring_constraints.services.busy_interval_service import BusyIntervalService
from recurring_constraints.services.recurring_constraint_service import (
    RecurringConstraintService,
)


def get_query_serializer(serializer_class, request):
    serializer = serializer_class(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    return serializer


class RecurringSourceViewSet(RevisionPlannerModelViewSet):
    """
    ViewSet for managing the recurring sources (work schedules, activities and
    routine moments) of the authenticated user.
    """

    queryset = RecurringSource.objects.all()
    serializer_class = RecurringSourceSerializer
    filterset_class = RecurringSourceFilterSet

    def get_queryset(self):
        user = self.request.user
        if not user.is_authenticated:
            return RecurringSource.objects.none()
        return super().get_queryset().filter_by_user(user.pk).order_by("pk")

    @extend_schema(
        summary="Delete recurring source",
        description="Delete a recurring source together with all of its exceptions.",
        responses={204: None},
    )
    @inject
    def destroy(
        self,
        request,
        *args,
        recurring_constraint_service: Annotated[
            RecurringConstraintService, Provide["recurring_constraint_service"]
        ],
        **kwargs,
    ):
        instance = self.get_object()
        recurring_constraint_service.initialize(user=request.user)
        try:
            recurring_constraint_service.delete_source(instance)
        except RecurringConstraintsError as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Get source occurrences",
        description="Resolved occurrences of one source between two dates, both inclusive.",
        parameters=[DateWindowQuerySerializer],
        responses={200: OccurrenceSerializer(many=True)},
    )
    @action(
        methods=["GET"],
        detail=True,
        url_path="occurrences",
        url_name="occurrences",
    )
    @inject
    def occurrences(
        self,
        request,
        pk,
        recurring_constraint_service: Annotated[
            RecurringConstraintService, Provide["recurring_constraint_service"]
        ],
    ):
        source = self.get_object()
        window = get_query_serializer(DateWindowQuerySerializer, request).to_window()

        recurring_constraint_service.initialize(user=request.user)
        occurrences = recurring_constraint_service.get_source_occurrences(source, window)
        return Response(OccurrenceSerializer(occurrences, many=True).data)

    @extend_schema(
        methods=["GET"],
        summary="List source exceptions",
        responses={200: OccurrenceExceptionSerializer(many=True)},
    )
    @extend_schema(
        methods=["POST"],
        summary="Edit or cancel one occurrence",
        description=(
            "Store a modified or deleted exception for one occurrence date. "
            "Posting again for the same date replaces the previous exception."
        ),
        request=OccurrenceExceptionInputSerializer,
        responses={201: OccurrenceExceptionSerializer},
    )
    @action(
        methods=["GET", "POST"],
        detail=True,
        url_path="exceptions",
        url_name="exceptions",
    )
    @inject
    def exceptions(
        self,
        request,
        pk,
        recurring_constraint_service: Annotated[
            RecurringConstraintService, Provide["recurring_constraint_service"]
        ],
    ):
        source = self.get_object()
        recurring_constraint_service.initialize(user=request.user)

        if request.method == "GET":
            exceptions = recurring_constraint_service.list_exceptions(source)
            return Response(OccurrenceExceptionSerializer(exceptions, many=True).data)

        serializer = OccurrenceExceptionInputSerializer(
            data=request.data,
            context={**self.get_serializer_context(), "source": source},
        )
        serializer.is_valid(raise_exception=True)
        try:
            exception = serializer.save()
        except RecurringConstraintsError as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(
            OccurrenceExceptionSerializer(exception).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        summary="Restore one occurrence",
        description="Remove the exception stored for an occurrence date.",
        responses={204: None},
    )
    @action(
        methods=["DELETE"],
        detail=True,
        url_path=r"exceptions/(?P<exception_date>\d{4}-\d{2}-\d{2})",
        url_name="exception-detail",
    )
    @inject
    def restore_occurrence(
        self,
        request,
        pk,
        exception_date,
        recurring_constraint_service: Annotated[
            RecurringConstraintService, Provide["recurring_constraint_service"]
        ],
    ):
        source = self.get_object()
        try:
            occurrence_date = datetime.date.fromisoformat(exception_date)
        except ValueError as e:
            raise ValidationError({"exception_date": ["Invalid date."]}) from e

        recurring_constraint_service.initialize(user=request.user)
        try:
            restored = recurring_constraint_service.restore_occurrence(source, occurrence_date)
        except RecurringConstraintsError as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        if not restored:
            raise Http404("No exception for this occurrence.")
        return Response(status=status.HTTP_204_NO_CONTENT)


class OccurrenceViewSet(viewsets.ViewSet):
    """
    Resolved occurrences of every recurring source of the authenticated user.
    """

    @extend_schema(
        summary="List occurrences",
        description=(
            "Occurrences of all sources between start_date and end_date (inclusive), "
            "with exceptions applied, sorted by start."
        ),
        parameters=[
            OccurrencesQuerySerializer,
            OpenApiParameter(
                name="category",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Restrict to these categories, repeat the parameter for several",
                many=True,
            ),
        ],
        responses={200: OccurrenceSerializer(many=True)},
    )
    @inject
    def list(  # noqa: A003
        self,
        request,
        recurring_constraint_service: Annotated[
            RecurringConstraintService, Provide["recurring_constraint_service"]
        ],
    ):
        query = get_query_serializer(OccurrencesQuerySerializer, request)

        recurring_constraint_service.initialize(user=request.user)
        occurrences = recurring_constraint_service.get_occurrences(
            query.to_window(), categories=query.validated_data.get("category")
        )
        return Response(OccurrenceSerializer(occurrences, many=True).data)


class BusyIntervalViewSet(viewsets.ViewSet):
    """
    Busy intervals handed to the revision scheduler.
    """

    @extend_schema(
        summary="List busy intervals",
        description=(
            "Recurring occurrences plus calendar and planned events intersecting the window, "
            "sorted by start and capped. `truncated` tells whether the cap was hit."
        ),
        parameters=[BusyIntervalsQuerySerializer],
        responses={200: BusyIntervalResultSerializer},
    )
    @inject
    def list(  # noqa: A003
        self,
        request,
        busy_interval_service: Annotated[BusyIntervalService, Provide["busy_interval_service"]],
    ):
        query = get_query_serializer(BusyIntervalsQuerySerializer, request)

        result = busy_interval_service.get_busy_intervals(
            request.user,
            query.to_window(),
            max_intervals=query.validated_data.get("max_intervals"),
        )
        return Response(BusyIntervalResultSerializer(result).data)


class CalendarEventViewSet(RevisionPlannerModelViewSet):
    """
    ViewSet for managing the one-off calendar events of the authenticated user.
    """

    queryset = CalendarEvent.objects.all()
    serializer_class = CalendarEventSerializer
    filterset_class = CalendarEventFilterSet

    def get_queryset(self):
        user = self.request.user
        if not user.is_authenticated:
            return CalendarEvent.objects.none()
        return super().get_queryset().filter_by_user(user.pk).order_by("start_time", "pk")


class PlannedEventViewSet(RevisionPlannerModelViewSet):
    """
    ViewSet for managing the revision sessions already planned for the authenticated user.
    """

    queryset = PlannedEvent.objects.all()
    serializer_class = PlannedEventSerializer
    filterset_class = PlannedEventFilterSet

    def get_queryset(self):
        user = self.request.user
        if not user.is_authenticated:
            return PlannedEvent.objects.none()
        return super().get_queryset().filter_by_user(user.pk).order_by("start_time", "pk")
