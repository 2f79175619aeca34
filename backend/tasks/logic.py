TASK_FIELDS = ("SourcePath", "TargetPath", "TargetList", "TargetListRelativePath")


def blank_task():
    return {field: "" for field in TASK_FIELDS}


def is_valid(task):
    # missing keys count as empty
    return all((task.get(field) or "").strip() != "" for field in TASK_FIELDS)


def invalid_task_indices(tasks):
    return [idx for idx, t in enumerate(tasks) if not is_valid(t)]
