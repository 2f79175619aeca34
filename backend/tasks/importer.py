# backend/tasks/importer.py
import json
import logging

from .errors import TaskParseError
from .logic import TASK_FIELDS, blank_task

logger = logging.getLogger(__name__)


def _is_falsy(value):
    # JavaScript falsiness: an empty array or object is still truthy there
    if value is None or value is False or value == "":
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def _reject_constant(name):
    # NaN and Infinity are not JSON
    raise ValueError(f"invalid JSON constant {name}")


def _as_text(value):
    if _is_falsy(value):
        return ""
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    # lone surrogate escapes parse fine but cannot be written back out as UTF-8
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise TaskParseError() from exc
    return text


def normalize_task(item):
    if item is None:
        raise TaskParseError()
    if not isinstance(item, dict):
        return blank_task()
    return {field: _as_text(item.get(field)) for field in TASK_FIELDS}


def import_from_text(contents):
    """
    Parse an uploaded document and return the normalized task list.

    Only a top-level "Tasks" array is consulted. A document without one
    returns None and is meant to leave the current list alone.
    """
    if isinstance(contents, (bytes, bytearray)):
        try:
            contents = bytes(contents).decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TaskParseError() from exc
    elif contents.startswith("\ufeff"):
        contents = contents[1:]

    try:
        data = json.loads(contents, parse_constant=_reject_constant)
    except ValueError as exc:
        raise TaskParseError() from exc

    if not isinstance(data, dict) or not isinstance(data.get("Tasks"), list):
        return None
    return [normalize_task(item) for item in data["Tasks"]]


def import_into_store(store, contents):
    """Replaces the store's tasks on success. Returns False when the document had no Tasks array."""
    try:
        tasks = import_from_text(contents)
    except TaskParseError:
        logger.warning("rejected import: not a valid JSON document")
        raise
    if tasks is None:
        logger.info("import ignored: document has no Tasks array")
        return False
    store.replace_all(tasks)
    logger.info("imported %d task(s)", len(tasks))
    return True
