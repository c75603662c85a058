from typing import TYPE_CHECKING, Annotated

from dependency_injector.wiring import Provide, inject
from rest_framework import serializers

from recurring_constraints.constants import (
    OVERLAY_TEXT_KEYS,
    OVERLAY_TEXT_MAX_LENGTH,
    ActivityKind,
    BusyIntervalSource,
    ExceptionType,
    SourceCategory,
    WorkScheduleFrequency,
    WorkScheduleKind,
)
from recurring_constraints.exceptions import (
    InvalidOccurrenceExceptionError,
    InvalidRecurringSourceError,
    RecurringConstraintServiceNotInjectedError,
    RecurringConstraintsError,
)
from recurring_constraints.models import CalendarEvent, PlannedEvent, RecurringSource
from recurring_constraints.recurrence_utils import normalize_days_of_week
from recurring_constraints.services.dataclasses import (
    DateWindow,
    OccurrenceExceptionData,
    RecurringSourceInputData,
)


if TYPE_CHECKING:
    from recurring_constraints.services.recurring_constraint_service import (
        RecurringConstraintService,
    )


META_KIND_CHOICES = {
    SourceCategory.WORK: WorkScheduleKind.values,
    SourceCategory.ACTIVITY: ActivityKind.values,
}


class RecurringConstraintServiceMixin:
    @inject
    def __init__(
        self,
        *args,
        recurring_constraint_service: Annotated[
            "RecurringConstraintService | None", Provide["recurring_constraint_service"]
        ] = None,
        **kwargs,
    ):
        self.recurring_constraint_service = recurring_constraint_service
        super().__init__(*args, **kwargs)

    def get_recurring_constraint_service(self) -> "RecurringConstraintService":
        if not self.recurring_constraint_service:
            raise RecurringConstraintServiceNotInjectedError(
                "recurring_constraint_service is not defined, "
                "please configure your DI container correctly"
            )
        self.recurring_constraint_service.initialize(user=self.context["request"].user)
        return self.recurring_constraint_service


class RecurringSourceSerializer(RecurringConstraintServiceMixin, serializers.ModelSerializer):
    """Serializer for recurring sources. Writes go through RecurringConstraintService."""

    days_of_week = serializers.ListField(
        child=serializers.CharField(),
        allow_empty=False,
        help_text="Weekdays the source repeats on (English or French names, or MO..SU codes)",
    )
    meta = serializers.DictField(
        required=False,
        help_text="Category specific fields (kind, frequency, hours_per_week, company, ...)",
    )

    class Meta:
        model = RecurringSource
        fields = (
            "id",
            "category",
            "days_of_week",
            "start_time",
            "end_time",
            "title",
            "location",
            "meta",
            "created",
            "modified",
        )
        read_only_fields = ("id", "created", "modified")

    def validate_days_of_week(self, value: list[str]) -> list[str]:
        try:
            return [str(day) for day in normalize_days_of_week(value)]
        except InvalidRecurringSourceError as e:
            raise serializers.ValidationError(str(e)) from e

    def validate(self, attrs: dict) -> dict:
        category = attrs.get("category", getattr(self.instance, "category", None))
        start_time = attrs.get("start_time", getattr(self.instance, "start_time", None))
        end_time = attrs.get("end_time", getattr(self.instance, "end_time", None))

        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError(
                {"end_time": "end_time must be after start_time (no crossing midnight)."}
            )

        kind = attrs.get("meta", {}).get("kind")
        allowed_kinds = META_KIND_CHOICES.get(category)
        if kind is not None and allowed_kinds is not None and kind not in allowed_kinds:
            raise serializers.ValidationError({"meta": f"Unknown {category} kind: {kind}"})

        frequency = attrs.get("meta", {}).get("frequency")
        if frequency is not None and frequency not in WorkScheduleFrequency.values:
            raise serializers.ValidationError({"meta": f"Unknown frequency: {frequency}"})

        return attrs

    def _build_input_data(self, validated_data: dict) -> RecurringSourceInputData:
        def get_value(name, default=None):
            return validated_data.get(name, getattr(self.instance, name, default))

        return RecurringSourceInputData(
            category=get_value("category"),
            days_of_week=get_value("days_of_week"),
            start_time=get_value("start_time"),
            end_time=get_value("end_time"),
            title=get_value("title", ""),
            location=get_value("location", ""),
            meta=get_value("meta", {}),
        )

    def create(self, validated_data: dict) -> RecurringSource:
        service = self.get_recurring_constraint_service()
        try:
            return service.create_source(self._build_input_data(validated_data))
        except RecurringConstraintsError as e:
            raise serializers.ValidationError(str(e)) from e

    def update(self, instance: RecurringSource, validated_data: dict) -> RecurringSource:
        service = self.get_recurring_constraint_service()
        try:
            return service.update_source(instance, self._build_input_data(validated_data))
        except RecurringConstraintsError as e:
            raise serializers.ValidationError(str(e)) from e


class OccurrenceExceptionSerializer(serializers.Serializer):
    """Read serializer for exceptions, from models or OccurrenceExceptionData alike."""

    id = serializers.IntegerField(read_only=True)  # noqa: A003
    source_category = serializers.ChoiceField(choices=SourceCategory.choices, read_only=True)
    source_id = serializers.IntegerField(read_only=True)
    exception_date = serializers.DateField(read_only=True)
    exception_type = serializers.ChoiceField(choices=ExceptionType.choices, read_only=True)
    modified_fields = serializers.DictField(read_only=True, allow_null=True)


class OccurrenceExceptionInputSerializer(RecurringConstraintServiceMixin, serializers.Serializer):
    """Serializer for editing or cancelling one occurrence of a recurring source."""

    exception_date = serializers.DateField(
        help_text="The date of the occurrence to modify or cancel"
    )
    exception_type = serializers.ChoiceField(choices=ExceptionType.choices)
    modified_fields = serializers.DictField(
        required=False,
        allow_null=True,
        help_text=(
            "Partial overlay for modified occurrences: start_time / end_time as HH:MM, "
            "title, location or any metadata key"
        ),
    )

    def validate(self, attrs: dict) -> dict:
        exception_type = attrs["exception_type"]
        modified_fields = attrs.get("modified_fields")

        if exception_type == ExceptionType.DELETED and modified_fields:
            raise serializers.ValidationError(
                {"modified_fields": "A deleted occurrence cannot carry modified_fields."}
            )
        if exception_type == ExceptionType.MODIFIED and not modified_fields:
            raise serializers.ValidationError(
                {"modified_fields": "A modified occurrence requires modified_fields."}
            )
        for key in OVERLAY_TEXT_KEYS:
            value = (modified_fields or {}).get(key, "")
            if not isinstance(value, str) or len(value) > OVERLAY_TEXT_MAX_LENGTH:
                raise serializers.ValidationError(
                    {
                        "modified_fields": (
                            f"{key} must be a string of at most "
                            f"{OVERLAY_TEXT_MAX_LENGTH} characters."
                        )
                    }
                )
        return attrs

    def save(self, **kwargs) -> OccurrenceExceptionData:
        source = self.context["source"]
        service = self.get_recurring_constraint_service()

        try:
            if self.validated_data["exception_type"] == ExceptionType.DELETED:
                self.instance = service.cancel_occurrence(
                    source, self.validated_data["exception_date"]
                )
            else:
                self.instance = service.edit_occurrence(
                    source,
                    self.validated_data["exception_date"],
                    self.validated_data["modified_fields"],
                )
        except InvalidOccurrenceExceptionError as e:
            raise serializers.ValidationError(str(e)) from e
        return self.instance


class DateWindowQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()

    def to_window(self) -> DateWindow:
        return DateWindow(
            start_date=self.validated_data["start_date"],
            end_date=self.validated_data["end_date"],
        )


class OccurrencesQuerySerializer(DateWindowQuerySerializer):
    category = serializers.MultipleChoiceField(choices=SourceCategory.choices, required=False)


class BusyIntervalsQuerySerializer(DateWindowQuerySerializer):
    max_intervals = serializers.IntegerField(required=False, min_value=1)


class OccurrenceSerializer(serializers.Serializer):
    source_category = serializers.ChoiceField(choices=SourceCategory.choices)
    source_id = serializers.IntegerField()
    occurrence_date = serializers.DateField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    title = serializers.CharField()
    metadata = serializers.DictField(source="fields")
    is_modified = serializers.BooleanField()


class BusyIntervalSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    source_tag = serializers.ChoiceField(choices=BusyIntervalSource.choices)
    source_id = serializers.IntegerField()
    title = serializers.CharField()


class BusyIntervalResultSerializer(serializers.Serializer):
    intervals = BusyIntervalSerializer(many=True)
    total_count = serializers.IntegerField()
    truncated = serializers.BooleanField()


class TimedEventSerializerMixin:
    def validate(self, attrs: dict) -> dict:
        start_time = attrs.get("start_time", getattr(self.instance, "start_time", None))
        end_time = attrs.get("end_time", getattr(self.instance, "end_time", None))
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({"end_time": "end_time must be after start_time."})
        return attrs

    def create(self, validated_data: dict):
        validated_data["user"] = self.context["request"].user
        return super().create(validated_data)


class CalendarEventSerializer(TimedEventSerializerMixin, serializers.ModelSerializer):
    class Meta:
        model = CalendarEvent
        fields = (
            "id",
            "title",
            "start_time",
            "end_time",
            "location",
            "description",
            "external_id",
            "created",
            "modified",
        )
        read_only_fields = ("id", "created", "modified")


class PlannedEventSerializer(TimedEventSerializerMixin, serializers.ModelSerializer):
    class Meta:
        model = PlannedEvent
        fields = (
            "id",
            "title",
            "start_time",
            "end_time",
            "notes",
            "created",
            "modified",
        )
        read_only_fields = ("id", "created", "modified")
