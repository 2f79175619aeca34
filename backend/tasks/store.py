# backend/tasks/store.py
import logging

from .errors import StaleRevisionError
from .logic import TASK_FIELDS, blank_task

logger = logging.getLogger(__name__)

SESSION_KEY = "migration_tasks"


class TaskListStore:
    """
    Ordered list of task dicts owned by one editor session.

    Every mutation assigns a new list so callers holding an older snapshot
    never see it change underneath them. `revision` moves on each structural
    change (add / remove / replace_all) so an edit addressed by index can be
    checked against the layout it was made on.
    """

    def __init__(self, tasks=None, revision=0):
        if tasks is None:
            tasks = [blank_task()]
        self._tasks = [_clean(t) for t in tasks]
        self.revision = revision

    def __len__(self):
        return len(self._tasks)

    @property
    def tasks(self):
        return [dict(t) for t in self._tasks]

    @property
    def can_remove(self):
        return len(self._tasks) > 1

    def check_revision(self, revision):
        if revision is not None and revision != self.revision:
            raise StaleRevisionError(revision, self.revision)

    def add_task(self):
        self._tasks = self._tasks + [blank_task()]
        self.revision += 1
        logger.debug("added task #%d (revision %d)", len(self._tasks) - 1, self.revision)

    def remove_task(self, index):
        if not 0 <= index < len(self._tasks):
            logger.debug("ignoring remove of out-of-range task #%s", index)
            return False
        self._tasks = [t for i, t in enumerate(self._tasks) if i != index]
        self.revision += 1
        logger.debug("removed task #%d (revision %d)", index, self.revision)
        return True

    def update_field(self, index, field, value):
        if field not in TASK_FIELDS:
            raise ValueError(f"unknown task field: {field!r}")
        if not 0 <= index < len(self._tasks):
            return False
        updated = [dict(t) for t in self._tasks]
        updated[index][field] = value
        self._tasks = updated
        return True

    def replace_all(self, tasks):
        self._tasks = [_clean(t) for t in tasks]
        self.revision += 1
        logger.debug("replaced task list with %d task(s) (revision %d)", len(self._tasks), self.revision)

    def to_dict(self):
        return {"tasks": self.tasks, "revision": self.revision}

    # --- session binding ---
    @classmethod
    def load(cls, session):
        data = session.get(SESSION_KEY)
        if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
            return cls()
        return cls(data["tasks"], revision=int(data.get("revision") or 0))

    def save(self, session):
        session[SESSION_KEY] = self.to_dict()


def _clean(task):
    return {field: task.get(field, "") for field in TASK_FIELDS}
