# batch_core/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class StatusWriteGuardMixin(models.Model):
    """
    Block direct writes to a status field owned by a service.

    Batch.status moves only through BatchLifecycleService.transition and
    QcSession.status only through QcSessionService, both of which write with
    queryset.update() under a compare-and-swap. A plain .save() that changes
    STATUS_FIELD on an existing row raises PermissionDenied.

    Escape hatch:
      - pass _workflow_bypass=True to save(), OR
      - set instance._workflow_bypass = True
    For fixtures and data repair only.
    """

    STATUS_FIELD = "status"
    BYPASS_KWARG = "_workflow_bypass"

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        bypass = bool(
            kwargs.pop(self.BYPASS_KWARG, False)
            or getattr(self, self.BYPASS_KWARG, False)
        )

        if not bypass and self.pk is not None and self.STATUS_FIELD:
            stored = (
                type(self).objects.filter(pk=self.pk)
                .values_list(self.STATUS_FIELD, flat=True)
                .first()
            )
            # stored is None for a brand-new row created with an explicit pk
            if stored is not None and stored != getattr(self, self.STATUS_FIELD, None):
                raise PermissionDenied(
                    f"{type(self).__name__}.{self.STATUS_FIELD} cannot be written directly. "
                    "Use the lifecycle service."
                )

        return super().save(*args, **kwargs)


class AppendOnlyMixin(models.Model):
    """
    Rows are written once and never changed or removed.
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk is not None and type(self).objects.filter(pk=self.pk).exists():
            raise PermissionDenied(f"{type(self).__name__} records are immutable.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionDenied(f"{type(self).__name__} records cannot be deleted.")
