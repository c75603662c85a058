from django.shortcuts import get_object_or_404

from rest_framework import mixins, status
from rest_framework.response import Response
from rest_framework.viewsets import ModelViewSet


class ActionSerializerMixin:
    """
    Lets a viewset declare ``read_serializer_class``, ``create_serializer_class`` and
    ``update_serializer_class`` next to ``serializer_class``. Missing ones fall back
    to ``serializer_class``.
    """

    def _get_serializer_class_for(self, *attribute_names):
        for attribute_name in attribute_names:
            serializer_class = getattr(self, attribute_name, None)
            if serializer_class is not None:
                return serializer_class

        assert self.serializer_class is not None, (  # noqa: S101
            f"'{self.__class__.__name__}' should include a `serializer_class` attribute."
        )
        return self.serializer_class

    def _build_serializer(self, serializer_class, *args, **kwargs):
        kwargs["context"] = self.get_serializer_context()
        return serializer_class(*args, **kwargs)

    def get_serializer_class(self):
        if self.action in ("list", "retrieve"):
            return self._get_serializer_class_for("read_serializer_class")
        return self._get_serializer_class_for("write_serializer_class")

    def get_read_serializer(self, *args, **kwargs):
        """
        Return the serializer instance used for output, after reads and writes alike.
        """
        return self._build_serializer(
            self._get_serializer_class_for("read_serializer_class"), *args, **kwargs
        )

    def get_create_serializer(self, *args, **kwargs):
        return self._build_serializer(
            self._get_serializer_class_for("create_serializer_class", "write_serializer_class"),
            *args,
            **kwargs,
        )

    def get_update_serializer(self, *args, **kwargs):
        return self._build_serializer(
            self._get_serializer_class_for("update_serializer_class", "write_serializer_class"),
            *args,
            **kwargs,
        )


class CreateModelMixin(ActionSerializerMixin, mixins.CreateModelMixin):
    def create(self, request, *args, **kwargs):
        serializer = self.get_create_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)

        # re-fetches the instance through the scoped queryset
        instance = self.get_queryset().get(pk=serializer.instance.pk)
        return_serializer = self.get_read_serializer(instance)
        headers = self.get_success_headers(return_serializer.data)
        return Response(return_serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class UpdateModelMixin(ActionSerializerMixin, mixins.UpdateModelMixin):
    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_update_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)

        instance = get_object_or_404(self.get_queryset(), pk=serializer.instance.pk)
        return Response(self.get_read_serializer(instance).data)


class FilterOnlyOnListMixin:
    def filter_queryset(self, queryset):
        if self.action != "list":
            return queryset
        return super().filter_queryset(queryset)


class RevisionPlannerModelViewSet(
    CreateModelMixin,
    UpdateModelMixin,
    FilterOnlyOnListMixin,
    ModelViewSet,
):
    """
    A viewset that provides default `create()`, `retrieve()`, `update()`,
    `partial_update()`, `destroy()` and `list()` actions for user owned models.
    It refetches the instance after write operations to return the stored data.
    """

    pass
