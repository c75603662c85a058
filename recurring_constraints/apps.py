from django.apps import AppConfig


class RecurringConstraintsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "recurring_constraints"
    verbose_name = "Recurring Constraints"
