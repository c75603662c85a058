from django.db import models
from django.utils.translation import gettext_lazy as _

from model_utils.fields import AutoCreatedField, AutoLastModifiedField


class IndexedTimeStampedModel(models.Model):
    """
    Adds indexed ``created`` and ``modified`` timestamps, maintained by django-model-utils.
    """

    created = AutoCreatedField(_("created"), db_index=True)
    modified = AutoLastModifiedField(_("modified"), db_index=True)

    class Meta:
        abstract = True


class BaseModel(IndexedTimeStampedModel):
    """
    Timestamped model with a free-form ``meta`` object for fields that only some
    rows carry (e.g. the category specific fields of a recurring source).
    """

    meta = models.JSONField(_("meta"), default=dict, blank=True)

    class Meta(IndexedTimeStampedModel.Meta):
        abstract = True
