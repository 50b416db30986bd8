from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Sequence
import numpy as np
from .models import WeekData, WeeklyMetric, WeeklyMetrics, WeeklyOptions, WeeklyRecord
from .utils import cell_text, parse_number, parse_percent, percent, round_half_up

logger = logging.getLogger(__name__)

ALL = "all"

# Fixed columns 0-8, weeks start at column 9: (Enrollment, ADA, Att%) per week.
# Row 0 carries the week label on the first column of each group, row 1 the
# sub-labels (ignored), data starts at row 2.
FIXED_COLUMNS = [
    "District", "School Name", "County", "Activity", "Category", "Type",
    "Max Capacity", "Total Enrolled", "Waitroom",
]
WEEKS_START_COL = 9
WEEK_STRIDE = 3
DATA_START_ROW = 2

METRICS: tuple = ("enrollment", "ada", "attPct")
METRIC_LABELS = {"enrollment": "Enrollment", "ada": "ADA", "attPct": "Att%"}

PALETTE = [
    "#3e8ccc", "#e81e76", "#53b078", "#fd7723", "#c652ff",
    "#13c8ae", "#284ae3", "#daba00", "#ff6b6b", "#4ecdc4",
    "#a29bfe", "#fd79a8", "#00cec9", "#e17055", "#636e72",
]
# =========================

# Parsing
# =========================
def _cell(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if idx < len(row) else None


def _week_labels(header: Sequence[Any]) -> List[str]:
    labels: List[str] = []
    for c in range(WEEKS_START_COL, len(header), WEEK_STRIDE):
        label = cell_text(header[c]).strip()
        labels.append(label or f"Week {len(labels) + 1}")
    return labels


def parse_weekly_grid(grid: Sequence[Sequence[Any]]) -> List[WeeklyRecord]:
    """
    One sheet -> WeeklyRecords. Columns are read by position, not by header
    name. A sheet without week columns yields nothing.
    """
    if len(grid) < DATA_START_ROW + 1:
        return []

    labels = _week_labels(grid[0])
    if not labels:
        logger.debug("weekly sheet has no week columns, skipped")
        return []

    records: List[WeeklyRecord] = []
    for row in grid[DATA_START_ROW:]:
        fixed = [cell_text(_cell(row, i)).strip() for i in range(6)]
        district, school, county, activity, category, typ = fixed
        if not school and not activity:
            continue

        weeks = []
        for i, label in enumerate(labels):
            base = WEEKS_START_COL + i * WEEK_STRIDE
            weeks.append(WeekData(
                week_label=label,
                enrollment=parse_number(_cell(row, base), lenient=True),
                ada=parse_number(_cell(row, base + 1), lenient=True),
                att_pct=parse_percent(_cell(row, base + 2)),
            ))

        records.append(WeeklyRecord(
            district=district,
            school_name=school,
            county=county,
            activity=activity,
            category=category,
            type=typ,
            max_capacity=parse_number(_cell(row, 6), lenient=True),
            total_enrolled=parse_number(_cell(row, 7), lenient=True),
            waitroom=parse_number(_cell(row, 8), lenient=True),
            weeks=tuple(weeks),
        ))

    return records


def parse_weekly_sheets(grids: Sequence[Sequence[Sequence[Any]]]) -> List[WeeklyRecord]:
    out: List[WeeklyRecord] = []
    for grid in grids:
        out.extend(parse_weekly_grid(grid))
    return out
# =========================

# Options & filters
# =========================
def split_weekly(records: Sequence[WeeklyRecord]):
    """(1-to-1 schools, district-affiliated)"""
    return [r for r in records if r.is_independent], [r for r in records if not r.is_independent]


def get_weekly_options(records: Sequence[WeeklyRecord]) -> WeeklyOptions:
    return WeeklyOptions(
        districts=tuple(sorted({r.district for r in records if r.district})),
        schools=tuple(sorted({r.school_name for r in records if r.school_name})),
        activities=tuple(sorted({r.activity for r in records if r.activity})),
        categories=tuple(sorted({r.category for r in records if r.category})),
        week_labels=tuple(w.week_label for w in records[0].weeks) if records else (),
    )


def filter_weekly(
    records: Sequence[WeeklyRecord],
    district: str = ALL,
    school: str = ALL,
    activity: str = ALL,
    category: str = ALL,
) -> List[WeeklyRecord]:
    out = []
    for r in records:
        if district != ALL and r.district != district:
            continue
        if school != ALL and r.school_name != school:
            continue
        if activity != ALL and r.activity != activity:
            continue
        if category != ALL and r.category != category:
            continue
        out.append(r)
    return out
# =========================

# Metrics
# =========================
def get_metric_value(week: WeekData, metric: WeeklyMetric) -> float:
    if metric == "enrollment":
        return week.enrollment
    if metric == "ada":
        return week.ada
    return week.att_pct


def get_metric_label(metric: WeeklyMetric) -> str:
    return METRIC_LABELS.get(metric, "Att%")


def is_percent_metric(metric: WeeklyMetric) -> bool:
    return metric == "attPct"


def enrollment_rate(enrolled: float, capacity: float) -> int:
    return percent(enrolled, capacity)


def _week_range(n: int, week_from: int, week_to: Optional[int]) -> range:
    last = n - 1 if week_to is None else min(week_to, n - 1)
    return range(max(0, week_from), last + 1)


def latest_value(
    record: WeeklyRecord,
    metric: WeeklyMetric,
    week_from: int = 0,
    week_to: Optional[int] = None,
) -> float:
    """Last week in [week_from, week_to] with a nonzero value, scanning backward; 0 if none."""
    for i in reversed(_week_range(len(record.weeks), week_from, week_to)):
        v = get_metric_value(record.weeks[i], metric)
        if v > 0:
            return v
    return 0


def get_weekly_metrics(
    records: Sequence[WeeklyRecord],
    week_from: int = 0,
    week_to: Optional[int] = None,
) -> WeeklyMetrics:
    capacity = sum(r.max_capacity for r in records)
    enrolled = sum(r.total_enrolled for r in records)
    return WeeklyMetrics(
        max_capacity=capacity,
        total_enrolled=enrolled,
        waitroom=sum(r.waitroom for r in records),
        latest_attended=sum(latest_value(r, "enrollment", week_from, week_to) for r in records),
        enrollment_rate=enrollment_rate(enrolled, capacity),
    )
# =========================

# Chart series
# =========================
def build_weekly_chart_data(
    records: Sequence[WeeklyRecord],
    metric: WeeklyMetric,
    week_from: int = 0,
    week_to: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    One point per week in range: {"week": label, <activity>: mean metric}.
    Means are rounded to one decimal.
    """
    if not records:
        return []

    activities = sorted({r.activity for r in records})
    all_weeks = records[0].weeks
    points = []
    for wi in _week_range(len(all_weeks), week_from, week_to):
        point: Dict[str, Any] = {"week": all_weeks[wi].week_label}
        for act in activities:
            vals = [
                get_metric_value(r.weeks[wi], metric)
                for r in records
                if r.activity == act and wi < len(r.weeks)
            ]
            point[act] = round_half_up(float(np.mean(vals)) * 10) / 10 if vals else 0
        points.append(point)
    return points


def build_activity_color_map(activities: Sequence[str]) -> Dict[str, str]:
    return {a: PALETTE[i % len(PALETTE)] for i, a in enumerate(sorted(activities))}
