"""Peewee ORM models for the local wallabag cache."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee
from playhouse.sqlite_ext import JSONField

from wallabag_offline.core.time_utils import EPOCH, parse_iso, to_iso

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


class IsoDateTimeField(peewee.TextField):
    """Datetime stored as a fixed-width ISO-8601 UTC string."""

    field_type = "TEXT"

    def db_value(self, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = parse_iso(value)
        return to_iso(value)

    def python_value(self, value: Any) -> _dt.datetime | None:
        if value is None:
            return None
        return parse_iso(value)


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    class Meta:
        database = database_proxy
        legacy_table_names = False


class EntryRecord(BaseModel):
    id = peewee.IntegerField(primary_key=True)
    content = peewee.TextField(null=True)
    created_at = IsoDateTimeField()
    domain_name = peewee.TextField(null=True)
    http_status = peewee.TextField(null=True)
    is_archived = peewee.BooleanField(default=False)
    is_public = peewee.BooleanField(default=False)
    is_starred = peewee.BooleanField(default=False)
    language = peewee.TextField(null=True)
    mimetype = peewee.TextField(null=True)
    origin_url = peewee.TextField(null=True)
    preview_picture = peewee.TextField(null=True)
    published_at = IsoDateTimeField(null=True)
    published_by = JSONField(null=True)
    reading_time = peewee.IntegerField(null=True)
    starred_at = IsoDateTimeField(null=True)
    title = peewee.TextField(null=True)
    uid = peewee.TextField(null=True)
    updated_at = IsoDateTimeField(index=True)
    url = peewee.TextField(null=True)
    headers = JSONField(null=True)
    # Denormalized copy of the tag list; taglinks holds the normalized form.
    tags = JSONField(default=list)
    user_email = peewee.TextField(null=True)
    user_id = peewee.IntegerField(null=True)
    user_name = peewee.TextField(null=True)

    class Meta:
        table_name = "entries"


class TagRecord(BaseModel):
    id = peewee.IntegerField(primary_key=True)
    label = peewee.TextField()
    slug = peewee.TextField()

    class Meta:
        table_name = "tags"


class TagLink(BaseModel):
    tag = peewee.ForeignKeyField(
        TagRecord, backref="links", on_delete="CASCADE", column_name="tag_id"
    )
    entry = peewee.ForeignKeyField(
        EntryRecord, backref="tag_links", on_delete="CASCADE", column_name="entry_id"
    )

    class Meta:
        table_name = "taglinks"
        primary_key = peewee.CompositeKey("tag", "entry")


class AnnotationRecord(BaseModel):
    id = peewee.IntegerField(primary_key=True)
    annotator_schema_version = peewee.TextField()
    created_at = IsoDateTimeField()
    ranges = JSONField(default=list)
    text = peewee.TextField(default="")
    updated_at = IsoDateTimeField(index=True)
    quote = peewee.TextField(null=True)
    user = peewee.TextField(null=True)
    entry = peewee.ForeignKeyField(
        EntryRecord, backref="annotations", on_delete="CASCADE", column_name="entry_id"
    )

    class Meta:
        table_name = "annotations"


class PendingNewUrl(BaseModel):
    """URL saved offline, created on the server by the next sync."""

    id = peewee.AutoField()
    url = peewee.TextField()

    class Meta:
        table_name = "new_urls"


class PendingNewAnnotation(BaseModel):
    """Annotation written offline, created on the server by the next sync."""

    id = peewee.AutoField()
    quote = peewee.TextField(null=True)
    text = peewee.TextField(default="")
    ranges = JSONField(default=list)
    user = peewee.TextField(null=True)
    entry = peewee.ForeignKeyField(
        EntryRecord, backref="pending_annotations", on_delete="CASCADE", column_name="entry_id"
    )

    class Meta:
        table_name = "new_annotations"


class PendingEntryDelete(BaseModel):
    """Entry deleted locally whose server-side deletion is not confirmed yet."""

    id = peewee.IntegerField(primary_key=True)

    class Meta:
        table_name = "deleted_entries"


class PendingAnnotationDelete(BaseModel):
    """Annotation deleted locally whose server-side deletion is not confirmed yet."""

    id = peewee.IntegerField(primary_key=True)

    class Meta:
        table_name = "deleted_annotations"


class SyncState(BaseModel):
    """Single-row table holding the sync watermark."""

    id = peewee.IntegerField(primary_key=True, default=1)
    last_sync = IsoDateTimeField(default=lambda: EPOCH)

    class Meta:
        table_name = "sync_state"


SYNC_STATE_ID = 1

ALL_MODELS: tuple[type[BaseModel], ...] = (
    EntryRecord,
    TagRecord,
    TagLink,
    AnnotationRecord,
    PendingNewUrl,
    PendingNewAnnotation,
    PendingEntryDelete,
    PendingAnnotationDelete,
    SyncState,
)


def model_to_dict(model: BaseModel | None) -> dict[str, Any] | None:
    """Convert a Peewee model instance to a plain dictionary.

    Foreign keys are flattened to their raw id under the column name
    (``entry_id``), matching how the pydantic models expect them.
    """
    if model is None:
        return None
    data: dict[str, Any] = {}
    for field in model._meta.sorted_fields:
        if isinstance(field, peewee.ForeignKeyField):
            data[field.column_name] = getattr(model, field.object_id_name)
        else:
            data[field.name] = getattr(model, field.name)
    return data
