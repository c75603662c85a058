from django.db.models import Manager

from common.querysets import BaseUserScopedQuerySet


class BaseUserScopedManager(Manager):
    """
    Base manager for models owned by a single user.
    Concrete managers return their own queryset subclass from ``get_queryset``.
    """

    def get_queryset(self) -> BaseUserScopedQuerySet:
        return BaseUserScopedQuerySet(self.model, using=self._db)

    def filter_by_user(self, user_id: int):
        """
        Filters the queryset by the specified user ID.
        :param user_id: ID of the owner to filter by.
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_by_user(user_id)

    def create(self, **kwargs):
        """
        Override the create method to ensure every instance has an owner.
        """
        if "user_id" not in kwargs and "user" not in kwargs:
            raise ValueError("`user` is required to create an instance.")
        return super().create(**kwargs)
