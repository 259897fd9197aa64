#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Per-person workload aggregation.

Turns a flat task list plus a period selection into ranked workload rows:

* period resolver – preset or custom window → inclusive ``DateRange`` (or
  ``None`` for all-time)
* task filter – keeps tasks whose due date falls inside the range
* assignee grouper – fans each task out to one bucket per assignee (or the
  unassigned bucket) and accumulates status counts, minutes and overdue work
* load scorer – weighted sum per bucket
* ranker – score, then overdue, then total; remaining ties keep the order in
  which buckets were first seen

Everything here is a pure function of its arguments. ``now`` is always passed
in; nothing reads the clock, touches files or keeps state between calls.
"""

from __future__ import annotations
import copy, hashlib, json, math, re
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

AssigneeId = Union[int, str]
TaskId = Union[int, str]

# =============== CONFIG ===============================================
DEFAULT_CONFIG = {
    # Load score weights: overdue work outweighs active work, active work
    # outweighs queued work, in-test sits between the two.
    "WEIGHTS": {
        "todo": 1,
        "in-progress": 2,
        "in-test": 1.5,
        "overdue": 3,
    },
    # Label/colour for the unassigned bucket and for ids missing from the directory
    "UNASSIGNED_LABEL": "Unassigned",
    "DEFAULT_COLOR": "#94a3b8",
}

STATUS_TODO = "todo"
STATUS_IN_PROGRESS = "in-progress"
STATUS_IN_TEST = "in-test"
STATUS_DONE = "done"

PERIOD_ALL_TIME = "all-time"
PERIOD_CUSTOM = "custom"
PERIOD_OFFSETS: Dict[str, relativedelta] = {
    "last-7-days": relativedelta(days=7),
    "last-1-month": relativedelta(months=1),
    "last-3-months": relativedelta(months=3),
    "last-1-year": relativedelta(years=1),
}
PERIOD_MODES = (*PERIOD_OFFSETS, PERIOD_ALL_TIME, PERIOD_CUSTOM)

EPOCH = datetime(1970, 1, 1)
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def deep_update(dst: dict, src: dict) -> dict:
    """Recursively merge ``src`` into ``dst`` (in-place)."""

    for key, value in (src or {}).items():
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            deep_update(dst[key], value)
        else:
            dst[key] = copy.deepcopy(value)
    return dst


def build_config(overrides: dict | None = None) -> dict:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if overrides:
        deep_update(cfg, overrides)
    weights = cfg.get("WEIGHTS") or {}
    known = set(DEFAULT_CONFIG["WEIGHTS"])
    for name, value in weights.items():
        if name not in known:
            raise ValueError(f"Unknown weight '{name}' (expected one of {sorted(known)})")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"Weight '{name}' must be a non-negative number, got {value!r}")
    return cfg

# =====================================================================

# -------------------- Model types --------------------
@dataclass(frozen=True)
class Task:
    id: TaskId
    title: str = ""
    project: str = ""
    due: Optional[str] = None
    status: str = STATUS_TODO
    duration_minutes: Union[int, float, str, None] = 0
    # Legacy single assignee; ``assignee_ids`` wins when it is non-empty.
    assignee_id: Optional[AssigneeId] = None
    assignee_ids: Tuple[AssigneeId, ...] = ()


@dataclass(frozen=True)
class Assignee:
    id: AssigneeId
    name: str
    color: str = ""


@dataclass(frozen=True)
class PeriodSelection:
    mode: str = PERIOD_ALL_TIME
    start: Optional[str] = None
    end: Optional[str] = None


class DateRange(NamedTuple):
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class AssigneeKey:
    """Bucket key: an assignee id, or ``None`` for the unassigned bucket.

    An id that is missing from the directory stays a distinct key; it is only
    its display label that falls back to the unassigned one.
    """

    assignee_id: Optional[AssigneeId] = None

    @property
    def unassigned(self) -> bool:
        return self.assignee_id is None


UNASSIGNED = AssigneeKey()


@dataclass
class Bucket:
    key: AssigneeKey
    name: str
    color: str
    todo: int = 0
    in_progress: int = 0
    in_test: int = 0
    done: int = 0
    overdue: int = 0
    total: int = 0
    total_minutes: float = 0


@dataclass(frozen=True)
class WorkloadRow:
    assignee_id: Optional[AssigneeId]
    name: str
    color: str
    todo: int
    in_progress: int
    in_test: int
    done: int
    overdue: int
    total: int
    total_minutes: float
    score: float

# -------------------- Helpers --------------------
def trim(s) -> str:
    return ("" if s is None else str(s)).strip()


def normalize_status(status) -> str:
    return trim(status).lower()


def to_minutes(value) -> float:
    """Duration in minutes; anything missing or non-numeric counts as 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    try:
        minutes = float(trim(value).replace(",", "."))
    except ValueError:
        return 0
    return minutes if math.isfinite(minutes) else 0


def parse_day(value) -> Optional[date]:
    """Calendar day of a due-date string; ``None`` when absent or unparsable.

    A leading ``YYYY-MM-DD`` wins (time parts are ignored), other spellings go
    through dateutil with a fixed default so missing fields never depend on
    today's date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = trim(value)
    if not text:
        return None
    m = ISO_DATE_RE.match(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None
    try:
        return date_parser.parse(text, default=EPOCH).date()
    except (ValueError, OverflowError):
        return None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def as_naive(now: Union[datetime, date]) -> datetime:
    if not isinstance(now, datetime):
        return start_of_day(now)
    return now.replace(tzinfo=None) if now.tzinfo else now

# -------------------- Period resolver --------------------
def resolve_period(selection: PeriodSelection, now: Union[datetime, date]) -> Optional[DateRange]:
    """Inclusive window for ``selection``; ``None`` means unbounded.

    ``start > end`` is returned as-is: the range is valid and simply matches
    nothing. Unknown modes behave like all-time.
    """
    now = as_naive(now)
    mode = trim(selection.mode).lower()
    offset = PERIOD_OFFSETS.get(mode)
    if offset is not None:
        return DateRange(start_of_day(now.date()) - offset, end_of_day(now.date()))
    if mode == PERIOD_CUSTOM:
        start_day = parse_day(selection.start)
        end_day = parse_day(selection.end)
        start = start_of_day(start_day) if start_day else EPOCH
        end = end_of_day(end_day) if end_day else now
        return DateRange(start, end)
    return None

# -------------------- Task filter --------------------
def filter_tasks(tasks: Iterable[Task], date_range: Optional[DateRange]) -> List[Task]:
    if date_range is None:
        return list(tasks)
    kept: List[Task] = []
    for task in tasks:
        due = parse_day(task.due)
        # Undated tasks never match a bounded window
        if due is None:
            continue
        if date_range.contains(start_of_day(due)):
            kept.append(task)
    return kept

# -------------------- Assignee grouper --------------------
def assignee_keys(task: Task) -> List[AssigneeKey]:
    """Buckets a task contributes to; never empty."""
    ids = [i for i in (task.assignee_ids or ()) if i is not None and trim(i)]
    if ids:
        keys: List[AssigneeKey] = []
        for assignee_id in ids:
            key = AssigneeKey(assignee_id)
            if key not in keys:
                keys.append(key)
        return keys
    if task.assignee_id is not None and trim(task.assignee_id):
        return [AssigneeKey(task.assignee_id)]
    return [UNASSIGNED]


def is_overdue(task: Task, now: Union[datetime, date]) -> bool:
    """Due strictly before today and not done. Due today is not overdue."""
    due = parse_day(task.due)
    if due is None or normalize_status(task.status) == STATUS_DONE:
        return False
    return due < as_naive(now).date()


def new_bucket(key: AssigneeKey, directory: Dict[AssigneeId, Assignee], config: dict) -> Bucket:
    person = None if key.unassigned else directory.get(key.assignee_id)
    if person is None:
        return Bucket(key=key, name=config["UNASSIGNED_LABEL"], color=config["DEFAULT_COLOR"])
    return Bucket(
        key=key,
        name=trim(person.name) or config["UNASSIGNED_LABEL"],
        color=trim(person.color) or config["DEFAULT_COLOR"],
    )


def add_task(bucket: Bucket, task: Task, overdue: bool) -> None:
    bucket.total += 1
    status = normalize_status(task.status)
    if status == STATUS_TODO:
        bucket.todo += 1
    elif status == STATUS_IN_PROGRESS:
        bucket.in_progress += 1
    elif status == STATUS_IN_TEST:
        bucket.in_test += 1
    elif status == STATUS_DONE:
        bucket.done += 1
    bucket.total_minutes += to_minutes(task.duration_minutes)
    if overdue:
        bucket.overdue += 1


def group_tasks(
    tasks: Iterable[Task],
    assignees: Iterable[Assignee],
    now: Union[datetime, date],
    config: dict | None = None,
) -> List[Bucket]:
    """Single pass over ``tasks``; buckets come back in first-seen order."""
    cfg = config or DEFAULT_CONFIG
    directory: Dict[AssigneeId, Assignee] = {}
    for person in assignees:
        directory.setdefault(person.id, person)
    buckets: Dict[AssigneeKey, Bucket] = {}
    for task in tasks:
        overdue = is_overdue(task, now)
        for key in assignee_keys(task):
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = new_bucket(key, directory, cfg)
            add_task(bucket, task, overdue)
    return list(buckets.values())

# -------------------- Load scorer --------------------
def load_score(todo: int, in_progress: int, in_test: int, overdue: int, weights: Dict[str, float] | None = None) -> float:
    w = weights or DEFAULT_CONFIG["WEIGHTS"]
    return (
        todo * w[STATUS_TODO]
        + in_progress * w[STATUS_IN_PROGRESS]
        + in_test * w[STATUS_IN_TEST]
        + overdue * w["overdue"]
    )


def score_bucket(bucket: Bucket, weights: Dict[str, float] | None = None) -> WorkloadRow:
    return WorkloadRow(
        assignee_id=bucket.key.assignee_id,
        name=bucket.name,
        color=bucket.color,
        todo=bucket.todo,
        in_progress=bucket.in_progress,
        in_test=bucket.in_test,
        done=bucket.done,
        overdue=bucket.overdue,
        total=bucket.total,
        total_minutes=bucket.total_minutes,
        score=load_score(bucket.todo, bucket.in_progress, bucket.in_test, bucket.overdue, weights),
    )

# -------------------- Ranker --------------------
def rank_rows(rows: Iterable[WorkloadRow]) -> List[WorkloadRow]:
    # sorted() is stable: rows that tie on all three keys keep their input order.
    return sorted(rows, key=lambda r: (-r.score, -r.overdue, -r.total))

# -------------------- Pipeline --------------------
def aggregate_workload(
    filtered_tasks: Iterable[Task],
    assignees: Sequence[Assignee],
    now: Union[datetime, date],
    config: dict | None = None,
) -> List[WorkloadRow]:
    """Group, score and rank tasks that already passed the period filter."""
    cfg = config or DEFAULT_CONFIG
    if not assignees:
        return []
    buckets = group_tasks(filtered_tasks, assignees, now, cfg)
    return rank_rows(score_bucket(b, cfg["WEIGHTS"]) for b in buckets)


def compute_workload(
    tasks: Iterable[Task],
    assignees: Sequence[Assignee],
    selection: PeriodSelection,
    now: Union[datetime, date],
    config: dict | None = None,
) -> List[WorkloadRow]:
    date_range = resolve_period(selection, now)
    return aggregate_workload(filter_tasks(tasks, date_range), assignees, now, config)

# -------------------- Selection / cross-filter --------------------
def select_row(
    rows: Sequence[WorkloadRow],
    index: int,
    on_select: Callable[[Optional[AssigneeId]], None] | None = None,
) -> Optional[AssigneeId]:
    """Assignee id behind a clicked row (``None`` for unassigned or a bad index)."""
    assignee_id = rows[index].assignee_id if 0 <= index < len(rows) else None
    if on_select is not None:
        on_select(assignee_id)
    return assignee_id


def tasks_for_assignee(tasks: Iterable[Task], assignee_id: Optional[AssigneeId]) -> List[Task]:
    key = AssigneeKey(assignee_id)
    return [task for task in tasks if key in assignee_keys(task)]

# -------------------- Memoized view --------------------
def workload_key(
    tasks: Sequence[Task],
    assignees: Sequence[Assignee],
    selection: PeriodSelection,
    now: Union[datetime, date],
) -> str:
    # Only the calendar day of ``now`` can change the result: due dates carry
    # no time, so a window ending at ``now`` matches the same days all day long.
    payload = {
        "tasks": [asdict(t) for t in tasks],
        "assignees": [asdict(a) for a in assignees],
        "selection": asdict(selection),
        "today": as_naive(now).date().isoformat(),
    }
    blob = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class WorkloadView:
    """Recomputes rows only when the inputs change between calls."""

    def __init__(self, config: dict | None = None):
        self.config = config or build_config()
        self._key: Optional[str] = None
        self._rows: List[WorkloadRow] = []
        self.computations = 0

    def rows(
        self,
        tasks: Sequence[Task],
        assignees: Sequence[Assignee],
        selection: PeriodSelection,
        now: Union[datetime, date],
    ) -> List[WorkloadRow]:
        key = workload_key(tasks, assignees, selection, now)
        if key != self._key:
            self._rows = compute_workload(tasks, assignees, selection, now, self.config)
            self._key = key
            self.computations += 1
        return list(self._rows)
