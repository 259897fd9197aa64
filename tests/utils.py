"""Fixtures and helpers for workload tests."""
from __future__ import annotations

import csv
import json
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from workload_engine import Assignee, Task

NOW = datetime(2026, 3, 18, 14, 30)

TASK_COLUMNS: Sequence[str] = (
    "id",
    "title",
    "project",
    "due",
    "status",
    "duration_minutes",
    "assignee_id",
    "assignee_ids",
)

ASSIGNEE_COLUMNS: Sequence[str] = ("id", "name", "color")

DIRECTORY: List[Assignee] = [
    Assignee(1, "Alice", "#ef4444"),
    Assignee(2, "Blair", "#3b82f6"),
    Assignee(3, "Casey", "#10b981"),
]


def day(offset: int, base: datetime = NOW) -> str:
    """ISO date ``offset`` days from ``base`` (negative = past)."""
    return (base.date() + timedelta(days=offset)).isoformat()


def make_task(task_id, *, status: str = "todo", due: str | date | None = None, **kwargs) -> Task:
    if isinstance(due, date):
        due = due.isoformat()
    kwargs.setdefault("title", f"Task {task_id}")
    return Task(id=task_id, status=status, due=due, **kwargs)


def task_row(
    *,
    tid: int,
    title: str = "",
    project: str = "",
    due: str = "",
    status: str = "todo",
    minutes: float | str = "",
    assignee_id: int | str | None = None,
    assignee_ids: Iterable[int | str] = (),
) -> Dict[str, str]:
    """Build a Dict row for ``tasks.csv``."""

    row = {col: "" for col in TASK_COLUMNS}
    row.update(
        {
            "id": str(tid),
            "title": title or f"Task {tid}",
            "project": project,
            "due": due,
            "status": status,
            "duration_minutes": str(minutes),
            "assignee_id": "" if assignee_id is None else str(assignee_id),
            "assignee_ids": ",".join(str(i) for i in assignee_ids),
        }
    )
    return row


def write_tasks(path: Path, rows: Iterable[Dict[str, str]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=TASK_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def write_assignees(path: Path, people: Iterable[Assignee] = DIRECTORY) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".json":
        path.write_text(json.dumps([{"id": p.id, "name": p.name, "color": p.color} for p in people]), encoding="utf-8")
        return
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(ASSIGNEE_COLUMNS)
        for p in people:
            writer.writerow([p.id, p.name, p.color])


def read_csv(path: Path) -> List[Dict[str, str]]:
    with path.open(encoding="utf-8", newline="") as handle:
        return list(csv.DictReader(handle))
