# backend/tasks/exporter.py
import json
import logging

from django.conf import settings
from django.http import HttpResponse

from .errors import TaskValidationError
from .logic import TASK_FIELDS, invalid_task_indices

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_FILENAME = "migration-tasks.json"

# fixed values expected by the migration tool; not editable from the form
EXPORT_SETTINGS = {
    "DefaultPackageFileCount": 0,
    "MigrateSiteSettings": 0,
    "MigrateRootFolder": True,
}


def build_export_document(tasks):
    """
    Returns {"Tasks": [...]} with the Settings block injected into every record.
    Field values are copied verbatim; trimming is only used for validation.
    Raises TaskValidationError if any task has an empty field.
    """
    invalid = invalid_task_indices(tasks)
    if invalid:
        raise TaskValidationError(invalid)

    records = []
    for t in tasks:
        record = {field: t.get(field, "") for field in TASK_FIELDS}
        record["Settings"] = dict(EXPORT_SETTINGS)
        records.append(record)
    return {"Tasks": records}


def render_export_json(document):
    return json.dumps(document, indent=2, ensure_ascii=False)


def export_filename():
    return getattr(settings, "MIGRATION_EXPORT_FILENAME", None) or DEFAULT_EXPORT_FILENAME


def export_response(tasks):
    document = build_export_document(tasks)
    body = render_export_json(document).encode("utf-8")
    filename = export_filename()
    response = HttpResponse(body, content_type="application/json; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    logger.info("exported %d task(s) as %s", len(document["Tasks"]), filename)
    return response
