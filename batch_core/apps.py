# batch_core/apps.py

from django.apps import AppConfig


class BatchCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "batch_core"
    verbose_name = "Batch lifecycle"

    def ready(self):
        # importing runs the enum-coverage checks of every status table
        from . import workflows  # noqa
        from .qc import evaluator  # noqa
        from .workflows import cascade  # noqa
