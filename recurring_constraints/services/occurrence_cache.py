import logging
import time
from collections.abc import Callable, Iterable

from django.core.cache import caches

from recurring_constraints.constants import DEFAULT_OCCURRENCE_CACHE_TIMEOUT
from recurring_constraints.services.dataclasses import DateWindow, OccurrenceData


logger = logging.getLogger(__name__)


class OccurrenceCache:
    """
    Read-through cache of resolved occurrences per user and window.

    Keys embed a per-user version. ``invalidate`` drops the version so every
    window cached for that user becomes unreachable at once.
    """

    key_prefix = "recurring-occurrences"

    def __init__(
        self,
        timeout: int | None = DEFAULT_OCCURRENCE_CACHE_TIMEOUT,
        cache_alias: str = "default",
    ):
        self.timeout = timeout
        self.cache = caches[cache_alias]

    def _get_version_key(self, user_id: int) -> str:
        return f"{self.key_prefix}:version:{user_id}"

    def _get_version(self, user_id: int) -> int:
        # time based so a version evicted by the backend is never reused
        return self.cache.get_or_set(self._get_version_key(user_id), time.time_ns, timeout=None)

    def _get_key(
        self, user_id: int, window: DateWindow, categories: Iterable[str] | None
    ) -> str:
        categories_part = ",".join(sorted(str(c) for c in categories)) if categories else "all"
        return (
            f"{self.key_prefix}:{user_id}:{self._get_version(user_id)}:"
            f"{window.start_date.isoformat()}:{window.end_date.isoformat()}:{categories_part}"
        )

    def get_or_resolve(
        self,
        user_id: int,
        window: DateWindow,
        resolve: Callable[[], list[OccurrenceData]],
        categories: Iterable[str] | None = None,
    ) -> list[OccurrenceData]:
        key = self._get_key(user_id, window, categories)
        occurrences = self.cache.get(key)
        if occurrences is None:
            occurrences = resolve()
            self.cache.set(key, occurrences, self.timeout)
        return occurrences

    def invalidate(self, user_id: int) -> None:
        logger.debug("Invalidating cached occurrences of user %s", user_id)
        self.cache.delete(self._get_version_key(user_id))
