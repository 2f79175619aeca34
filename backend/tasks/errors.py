# backend/tasks/errors.py


class TaskBuilderError(Exception):
    """Base class for errors shown to the user as a blocking notice."""

    message = "task builder error"

    def __init__(self, message=None):
        super().__init__(message or self.message)

    def as_dict(self):
        return {"error": str(self)}


class TaskValidationError(TaskBuilderError):
    message = "Please fill in all fields for each task before downloading."

    def __init__(self, invalid_indices, message=None):
        super().__init__(message)
        self.invalid_indices = list(invalid_indices)

    @property
    def invalid_count(self):
        return len(self.invalid_indices)

    def as_dict(self):
        return {
            "error": str(self),
            "invalid_tasks": self.invalid_indices,
            "invalid_count": self.invalid_count,
        }


class TaskParseError(TaskBuilderError):
    message = "Failed to parse JSON file"


class StaleRevisionError(TaskBuilderError):
    def __init__(self, expected, actual):
        super().__init__(f"task list revision is {actual}, edit was made against {expected}")
        self.expected = expected
        self.actual = actual

    def as_dict(self):
        return {"error": str(self), "revision": self.actual}
