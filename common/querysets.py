from django.db.models.query import QuerySet


class BaseUserScopedQuerySet(QuerySet):
    """
    Base QuerySet for models owned by a single user.

    Every read done on behalf of a request should go through ``filter_by_user``.
    """

    def filter_by_user(self, user_id: int):
        """
        Filters the queryset by the specified user ID.
        :param user_id: ID of the owner to filter by.
        :return: Filtered QuerySet.
        """
        return self.filter(user_id=user_id)
