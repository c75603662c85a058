"""Django management command for re-materializing recurring occurrences."""

from typing import Annotated, Any

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError, CommandParser

from dependency_injector.wiring import Provide, inject

from recurring_constraints.constants import SourceCategory
from recurring_constraints.exceptions import MaterializationSyncError
from recurring_constraints.services.materialization_service import MaterializationSyncService


class Command(BaseCommand):
    """Rebuild the materialized occurrences over the configured horizon."""

    help = "Re-materialize the recurring occurrences of one user or of every user"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--user-id",
            type=int,
            help="User ID to resync (optional, resyncs every user with sources if not specified)",
        )
        parser.add_argument(
            "--category",
            choices=SourceCategory.values,
            help="Only resync this category (optional, all categories if not specified)",
        )

    @inject
    def handle(
        self,
        *args: Any,
        materialization_sync_service: Annotated[
            "MaterializationSyncService | None", Provide["materialization_sync_service"]
        ] = None,
        **options: Any,
    ) -> None:
        if materialization_sync_service is None:
            raise CommandError("materialization_sync_service is not configured")

        user_model = get_user_model()
        user_id = options.get("user_id")
        category = options.get("category")

        if user_id:
            users = user_model.objects.filter(pk=user_id)
            if not users.exists():
                raise CommandError(f"User {user_id} not found")
        else:
            users = user_model.objects.filter(recurring_sources__isnull=False).distinct()

        categories = [SourceCategory(category)] if category else list(SourceCategory)
        failures = 0
        for user in users.order_by("pk"):
            for current_category in categories:
                try:
                    result = materialization_sync_service.sync(user, current_category)
                except MaterializationSyncError as e:
                    failures += 1
                    self.stdout.write(
                        self.style.ERROR(f"User {user.pk} ({current_category}): {e}")
                    )
                    continue
                self.stdout.write(
                    f"User {user.pk} ({current_category}): "
                    f"{result.created_count} occurrences from {result.window.start_date} "
                    f"to {result.window.end_date}"
                )

        if failures:
            raise CommandError(f"{failures} resync(s) failed")
        self.stdout.write(self.style.SUCCESS("Occurrences resynced"))
