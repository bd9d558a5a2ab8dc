from __future__ import annotations

from datetime import datetime

from gymops.domain import rules
from gymops.domain.models import Task
from gymops.domain.rows import TASKS, TaskRow, task_from_row
from gymops.domain.stages import TaskPriority, TaskStatus
from gymops.services.remote import RemoteDataService, RemoteError


def create_task(
    remote: RemoteDataService,
    *,
    title: str,
    description: str | None,
    due_date: datetime | None,
    assigned_to: str | None,
    branch_id: str | None,
    related_to: str | None = None,
    related_id: str | None = None,
    status: str = TaskStatus.PENDING.value,
    priority: str = TaskPriority.MEDIUM.value,
) -> Task:
    rules.require(title, "title")
    rules.validate_enum(status, [s.value for s in TaskStatus], "status")
    rules.validate_enum(priority, [p.value for p in TaskPriority], "priority")

    row: TaskRow = {
        "title": title,
        "description": description,
        "status": status,
        "priority": priority,
        "due_date": due_date.isoformat() if due_date else None,
        "assigned_to": assigned_to,
        "branch_id": branch_id,
        "related_to": related_to,
        "related_id": related_id,
    }
    created = remote.insert(TASKS, [row])
    if not created:
        raise RemoteError("Task insert returned no rows.")
    return task_from_row(created[0])
