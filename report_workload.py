#!/usr/bin/env python3
"""Summarize per-person workload for a time window.

Reads a task list and the assignee directory, applies the selected period and
emits a ranked per-person CSV, a plaintext recap and an optional stacked bar
chart. ``--assignee`` lists the tasks behind one row, the same way clicking a
row cross-filters the task list in the dashboard.
"""

from __future__ import annotations

import argparse
import csv
import json
import sys
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from dateutil import parser as date_parser

import workload_engine as engine
from workload_engine import Assignee, DateRange, PeriodSelection, Task, WorkloadRow

REPORT_COLUMNS = [
    "AssigneeId",
    "Name",
    "Color",
    "Todo",
    "InProgress",
    "InTest",
    "Done",
    "Overdue",
    "Total",
    "TotalMinutes",
    "Score",
]
NO_PROJECT = "No project"
HOURS_PER_MAN_DAY = 8
TOP_PROJECTS = 8


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Generate a per-person workload report", formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    ap.add_argument("--tasks", default="tasks.csv", type=Path, help="Task list (.csv or .json)")
    ap.add_argument("--assignees", default="assignees.csv", type=Path, help="Assignee directory (.csv or .json)")
    ap.add_argument("--period", default=engine.PERIOD_ALL_TIME, choices=engine.PERIOD_MODES, help="Time window applied to task due dates")
    ap.add_argument("--start", default=None, help="Custom period start date (with --period custom)")
    ap.add_argument("--end", default=None, help="Custom period end date (with --period custom)")
    ap.add_argument("--now", default=None, help="Reference date/time (defaults to the current clock)")
    ap.add_argument("--config", type=Path, help="Optional JSON file with CONFIG overrides")
    ap.add_argument("--out", default=Path("reports") / "workload_report.csv", type=Path, help="Where to write the per-person CSV report")
    ap.add_argument("--summary", default=Path("reports") / "workload_report.txt", type=Path, help="Optional plaintext summary (set to '-' to skip)")
    ap.add_argument("--plot", default=str(Path("reports") / "workload_bars.png"), help="Stacked bar chart PNG (set to '-' to skip)")
    ap.add_argument("--assignee", default=None, help="List the tasks of one row; use 'none' for the unassigned row")
    return ap.parse_args()

# -------------------- Loading --------------------
def parse_id(value) -> Optional[engine.AssigneeId]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = engine.trim(value)
    if not text:
        return None
    return int(text) if text.isdigit() else text


def split_ids(value) -> List[engine.AssigneeId]:
    if isinstance(value, (list, tuple, set)):
        raw = list(value)
    else:
        raw = engine.trim(value).split(",") if engine.trim(value) else []
    ids = [parse_id(v) for v in raw]
    return [i for i in ids if i is not None]


def load_records(path: Path, key: str) -> List[Dict[str, object]]:
    """Rows from a CSV file, or from a JSON list (optionally wrapped as ``{key: [...]}``)."""
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get(key) or []
        return [row for row in data if isinstance(row, dict)]
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        return list(csv.DictReader(handle))


def task_from_row(row: Dict[str, object]) -> Optional[Task]:
    task_id = parse_id(row.get("id"))
    if task_id is None:
        return None
    due = row.get("due") or row.get("date")
    return Task(
        id=task_id,
        title=engine.trim(row.get("title")),
        project=engine.trim(row.get("project")),
        due=engine.trim(due) or None,
        status=engine.trim(row.get("status")) or engine.STATUS_TODO,
        duration_minutes=row.get("duration_minutes") or 0,
        assignee_id=parse_id(row.get("assignee_id")),
        assignee_ids=tuple(split_ids(row.get("assignee_ids"))),
    )


def load_tasks(path: Path) -> List[Task]:
    tasks: List[Task] = []
    for idx, row in enumerate(load_records(path, "tasks"), start=1):
        task = task_from_row(row)
        if task is None:
            print(f"[warn] Skipping task record {idx} in {path}: missing id", file=sys.stderr)
            continue
        tasks.append(task)
    return tasks


def load_assignees(path: Path) -> List[Assignee]:
    people: List[Assignee] = []
    for idx, row in enumerate(load_records(path, "assignees"), start=1):
        person_id = parse_id(row.get("id"))
        if person_id is None:
            print(f"[warn] Skipping assignee record {idx} in {path}: missing id", file=sys.stderr)
            continue
        people.append(Assignee(id=person_id, name=engine.trim(row.get("name")), color=engine.trim(row.get("color"))))
    return people


def parse_now(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    try:
        return engine.as_naive(date_parser.parse(value))
    except (ValueError, OverflowError):
        raise SystemExit(f"Invalid --now value: {value}")

# -------------------- Summaries --------------------
def period_label(date_range: Optional[DateRange]) -> str:
    if date_range is None:
        return "all time"
    return f"{date_range.start.date().isoformat()} to {date_range.end.date().isoformat()}"


def summarize_tasks(tasks: List[Task]) -> Dict[str, object]:
    """Dashboard totals over the tasks inside the period (each task once)."""
    counts: Dict[str, int] = defaultdict(int)
    projects: Dict[str, int] = defaultdict(int)
    minutes = 0.0
    for task in tasks:
        counts[engine.normalize_status(task.status)] += 1
        projects[engine.trim(task.project) or NO_PROJECT] += 1
        minutes += engine.to_minutes(task.duration_minutes)
    hours = minutes / 60
    return {
        "total": len(tasks),
        "todo": counts.get(engine.STATUS_TODO, 0),
        "in_progress": counts.get(engine.STATUS_IN_PROGRESS, 0),
        "in_test": counts.get(engine.STATUS_IN_TEST, 0),
        "done": counts.get(engine.STATUS_DONE, 0),
        "total_minutes": minutes,
        "hours": hours,
        "man_days": hours / HOURS_PER_MAN_DAY,
        "projects": sorted(projects.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_PROJECTS],
    }


def format_minutes(value: float) -> str:
    return f"{value:g}"


def write_report(rows: List[WorkloadRow], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=REPORT_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(
                {
                    "AssigneeId": "" if row.assignee_id is None else row.assignee_id,
                    "Name": row.name,
                    "Color": row.color,
                    "Todo": row.todo,
                    "InProgress": row.in_progress,
                    "InTest": row.in_test,
                    "Done": row.done,
                    "Overdue": row.overdue,
                    "Total": row.total,
                    "TotalMinutes": format_minutes(row.total_minutes),
                    "Score": f"{row.score:.2f}",
                }
            )


def write_summary(rows: List[WorkloadRow], stats: Dict[str, object], path: Path, label: str) -> None:
    if str(path) == "-":
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["Workload report", f"Period: {label}"]
    if not rows:
        lines.append("No tasks found.")
    else:
        lines.append(f"People with work: {len(rows)} (tasks={stats['total']}, assignments={sum(r.total for r in rows)})")
        lines.append(
            f"Status: todo={stats['todo']} in-progress={stats['in_progress']} "
            f"in-test={stats['in_test']} done={stats['done']}"
        )
        lines.append(f"Time: {stats['hours']:.1f} hours ({stats['man_days']:.2f} man-days)")
        top = rows[0]
        lines.append(f"Highest load: {top.name} (score={top.score:.2f})")
        overdue = [r for r in rows if r.overdue > 0]
        if overdue:
            lines.append("People with overdue work: " + ", ".join(f"{r.name} ({r.overdue})" for r in overdue))
        if stats["projects"]:
            lines.append("Projects: " + ", ".join(f"{name} ({count})" for name, count in stats["projects"]))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def write_plot(rows: List[WorkloadRow], path: str) -> bool:
    if not path or path == "-" or not rows:
        return False
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        Path(path).parent.mkdir(parents=True, exist_ok=True)
        names = [f"{r.name} [{r.assignee_id}]" if r.assignee_id is not None else r.name for r in rows]
        positions = list(range(len(rows)))
        bottom = [0.0] * len(rows)
        plt.figure(figsize=(max(6, len(rows) * 0.8), 5))
        for label, attr in (("Todo", "todo"), ("In progress", "in_progress"), ("In test", "in_test"), ("Done", "done")):
            values = [getattr(r, attr) for r in rows]
            plt.bar(positions, values, bottom=bottom, label=label)
            bottom = [b + v for b, v in zip(bottom, values)]
        plt.scatter(positions, [b + 0.3 for b in bottom], c=[r.color for r in rows], marker="s", zorder=3)
        plt.xticks(positions, names, rotation=60, ha="right")
        plt.ylabel("Tasks")
        plt.title("Per-person workload (ranked by load score)")
        plt.legend()
        plt.tight_layout()
        plt.savefig(path, dpi=160)
        plt.close("all")
        return True
    except Exception as e:
        print(f"[warn] Could not produce plot: {e}", file=sys.stderr)
        return False


def print_assignee_tasks(tasks: List[Task], rows: List[WorkloadRow], assignee_id: Optional[engine.AssigneeId]) -> None:
    selected = engine.tasks_for_assignee(tasks, assignee_id)
    name = next((r.name for r in rows if r.assignee_id == assignee_id), "Unassigned" if assignee_id is None else str(assignee_id))
    print(f"[info] {len(selected)} task(s) for {name}")
    for task in selected:
        print(f"  {task.id}: {task.title or '-'} [{engine.normalize_status(task.status)}] due={task.due or '-'}")

# -------------------- Main --------------------
def main() -> None:
    args = parse_args()
    if not args.tasks.exists():
        raise SystemExit(f"Missing file: {args.tasks}")
    if not args.assignees.exists():
        raise SystemExit(f"Missing file: {args.assignees}")
    overrides = json.loads(args.config.read_text(encoding="utf-8")) if args.config else {}
    config = engine.build_config(overrides)
    now = parse_now(args.now)

    tasks = load_tasks(args.tasks)
    assignees = load_assignees(args.assignees)
    selection = PeriodSelection(mode=args.period, start=args.start, end=args.end)
    date_range = engine.resolve_period(selection, now)
    filtered = engine.filter_tasks(tasks, date_range)
    rows = engine.aggregate_workload(filtered, assignees, now, config)
    if not assignees:
        print(f"[warn] Assignee directory {args.assignees} is empty; no rows produced", file=sys.stderr)

    write_report(rows, args.out)
    write_summary(rows, summarize_tasks(filtered), args.summary, period_label(date_range))
    print(f"Wrote report to {args.out}")
    if str(args.summary) != "-":
        print(f"Summary saved to {args.summary}")
    if write_plot(rows, args.plot):
        print(f"Wrote plot → {args.plot}", file=sys.stderr)

    if args.assignee is not None:
        wanted = None if args.assignee.strip().lower() in ("", "none", "null") else parse_id(args.assignee)
        print_assignee_tasks(filtered, rows, wanted)


if __name__ == "__main__":
    main()
