from __future__ import annotations
import re
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from dateutil.relativedelta import relativedelta, MO
from .models import (
    AggregatedDayStats, AttendanceMark, DailyMetrics, DailyOptions, DailyRecord,
    DayOfWeekRow, DayStats,
)
from .utils import ACADEMIC_YEAR_START, AT_RISK_THRESHOLD, DAILY_WINDOW, cell_text, is_blank, percent

logger = logging.getLogger(__name__)

ALL = "all"
SECTION_SEP = "|"
DAY_ORDER: Tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri")
_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")  # date.weekday() order

MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}
# months from here on belong to the first calendar year of the school year
FALL_START_MONTH = 9

_DATE_RE = re.compile(r"([A-Za-z]+)\s+(\d+)")
_DOW_SUFFIX_RE = re.compile(r"/\s*([A-Za-z]{3})$")
# =========================

# Sheet layout helpers
# =========================
def _row_cell(row: Sequence[Any], idx: int) -> Any:
    if idx < 0 or idx >= len(row):
        return None
    return row[idx]


def is_blank_row(row: Sequence[Any]) -> bool:
    return all(is_blank(c) for c in row)


def _section_parts(row: Sequence[Any]) -> List[str]:
    if not row:
        return []
    first = cell_text(row[0]).strip()
    return [p.strip() for p in first.split(SECTION_SEP) if p.strip()]


def is_section_header(row: Sequence[Any]) -> bool:
    """
    "Activity | Category | Type [| Schedule]" in the first cell, the rest of
    the row empty (a merged header exposes only its top-left value).
    """
    if len(_section_parts(row)) < 3:
        return False
    return all(is_blank(c) for c in row[1:])


def _mark(v: Any) -> AttendanceMark:
    s = cell_text(v).strip()
    if s == "Yes":
        return "Yes"
    if s == "No":
        return "No"
    return ""
# =========================

# Parsing
# =========================
def parse_daily_sheet(rows: Sequence[Sequence[Any]], sheet_name: str) -> List[DailyRecord]:
    """
    Scans one school's sheet for stacked activity sections:
      section header -> (blank rows) -> column header -> student rows
    A section ends at the next section header or at two consecutive blank
    rows. Sections without "External ID" or "Type" columns are skipped.
    """
    records: List[DailyRecord] = []
    n = len(rows)
    i = 0

    while i < n:
        if not is_section_header(rows[i]):
            i += 1
            continue

        parts = _section_parts(rows[i])
        activity, category, typ = parts[0], parts[1], parts[2]
        i += 1

        while i < n and is_blank_row(rows[i]):
            i += 1
        if i >= n:
            break

        if is_section_header(rows[i]):
            logger.debug("%s: section %r has no column header", sheet_name, activity)
            continue

        col_row = [cell_text(c).strip() for c in rows[i]]
        idx = {name: col_row.index(name) if name in col_row else -1
               for name in ("External ID", "Student Name", "District", "County", "Type")}
        if idx["External ID"] == -1 or idx["Type"] == -1:
            logger.debug("%s: section %r skipped, missing External ID/Type columns", sheet_name, activity)
            i += 1
            continue

        date_cols = [j for j in range(idx["Type"] + 1, len(col_row)) if col_row[j]]
        dates = tuple(col_row[j] for j in date_cols)
        i += 1

        while i < n:
            row = rows[i]
            if is_section_header(row):
                break

            if is_blank_row(row):
                if i + 1 >= n or is_blank_row(rows[i + 1]):
                    i += 2
                    break
                # stray spacer row inside a section
                i += 1
                continue

            external_id = cell_text(_row_cell(row, idx["External ID"])).strip()
            if not external_id:
                i += 1
                continue

            records.append(DailyRecord(
                external_id=external_id,
                student_name=cell_text(_row_cell(row, idx["Student Name"])),
                district=cell_text(_row_cell(row, idx["District"])).strip(),
                school_name=sheet_name,
                county=cell_text(_row_cell(row, idx["County"])).strip(),
                activity=activity,
                category=category,
                type=typ,
                dates=dates,
                attendance=tuple(_mark(_row_cell(row, j)) for j in date_cols),
            ))
            i += 1

    return records


def parse_daily_attendance(sheets: Iterable[Tuple[str, Sequence[Sequence[Any]]]]) -> List[DailyRecord]:
    out: List[DailyRecord] = []
    for name, rows in sheets:
        recs = parse_daily_sheet(rows, name)
        logger.debug("daily sheet %r: %d records", name, len(recs))
        out.extend(recs)
    return out
# =========================

# Options & filters
# =========================
def split_daily(records: Sequence[DailyRecord]):
    """(1-to-1 schools, district-affiliated)"""
    return [r for r in records if r.is_independent], [r for r in records if not r.is_independent]


def get_daily_options(records: Sequence[DailyRecord]) -> DailyOptions:
    return DailyOptions(
        schools=tuple(sorted({r.school_name for r in records})),
        activities=tuple(sorted({r.activity for r in records if r.activity})),
        districts=tuple(sorted({r.district for r in records if r.district})),
        categories=tuple(sorted({r.category for r in records if r.category})),
    )


def filter_daily(
    records: Sequence[DailyRecord],
    school: str = ALL,
    activity: str = ALL,
    district: str = ALL,
    category: str = ALL,
) -> List[DailyRecord]:
    out = []
    for r in records:
        if school != ALL and r.school_name != school:
            continue
        if activity != ALL and r.activity != activity:
            continue
        if district != ALL and r.district != district:
            continue
        if category != ALL and r.category != category:
            continue
        out.append(r)
    return out
# =========================

# Metrics
# =========================
def _counts(marks: Iterable[str]) -> Tuple[int, int]:
    yes = possible = 0
    for m in marks:
        if m == "Yes":
            yes += 1
            possible += 1
        elif m == "No":
            possible += 1
    return yes, possible


def get_daily_metrics(records: Sequence[DailyRecord], at_risk_threshold: float = AT_RISK_THRESHOLD) -> DailyMetrics:
    total_yes = total_possible = at_risk = 0
    for r in records:
        yes, possible = _counts(r.attendance)
        total_yes += yes
        total_possible += possible
        # students with nothing recorded yet are never at risk
        if possible > 0 and yes / possible * 100 < at_risk_threshold:
            at_risk += 1

    return DailyMetrics(
        total_students=len(records),
        overall_rate=percent(total_yes, total_possible),
        at_risk=at_risk,
        total_present=total_yes,
    )
# =========================

# Date labels
# =========================
def parse_date_label(label: str, academic_year_start: Optional[int] = None) -> Optional[date]:
    """
    "Sep 01" / "Sep 01 / Mon" -> date.
    Labels carry no year: Sep-Dec fall in `academic_year_start`, Jan-Aug in
    the following year.
    """
    m = _DATE_RE.search(label or "")
    if not m:
        return None
    month = MONTHS.get(m.group(1))
    if month is None:
        return None

    start = ACADEMIC_YEAR_START if academic_year_start is None else academic_year_start
    year = start if month >= FALL_START_MONTH else start + 1
    try:
        return date(year, month, int(m.group(2)))
    except ValueError:
        return None


def get_day_label(label: str, academic_year_start: Optional[int] = None) -> Optional[str]:
    """Weekday key for a date label, None for weekends and unreadable labels."""
    m = _DOW_SUFFIX_RE.search(label or "")
    if m and m.group(1) in DAY_ORDER:
        return m.group(1)

    d = parse_date_label(label, academic_year_start)
    if d is None:
        return None
    day = _WEEKDAYS[d.weekday()]
    return day if day in DAY_ORDER else None


def get_unique_dates(records: Sequence[DailyRecord], academic_year_start: Optional[int] = None) -> List[str]:
    """
    All labels across records in calendar order. Labels that cannot be
    dated go last, in the order they were first seen.
    """
    seen: Dict[str, int] = {}
    for r in records:
        for d in r.dates:
            seen.setdefault(d, len(seen))

    def sort_key(label: str):
        d = parse_date_label(label, academic_year_start)
        if d is None:
            return (1, date.max, seen[label])
        return (0, d, seen[label])

    return sorted(seen, key=sort_key)


def get_visible_dates(
    dates: Sequence[str],
    date_from: Optional[int] = None,
    date_to: Optional[int] = None,
    window: int = DAILY_WINDOW,
) -> List[str]:
    # default range: the last `window` dates
    n = len(dates)
    to = date_to if date_to is not None else max(0, n - 1)
    frm = date_from if date_from is not None else max(0, n - window)
    return list(dates[frm:to + 1])


def get_attendance_for_date(record: DailyRecord, label: str) -> AttendanceMark:
    try:
        return record.attendance[record.dates.index(label)]
    except (ValueError, IndexError):
        return ""
# =========================

# Day of week
# =========================
def _day_counts(records: Iterable[DailyRecord], academic_year_start: Optional[int]) -> Dict[str, List[int]]:
    out: Dict[str, List[int]] = {}
    for r in records:
        for label, mark in zip(r.dates, r.attendance):
            day = get_day_label(label, academic_year_start)
            if day is None:
                continue
            c = out.setdefault(day, [0, 0])
            if mark == "Yes":
                c[0] += 1
                c[1] += 1
            elif mark == "No":
                c[1] += 1
    return out


def get_day_of_week_stats(records: Sequence[DailyRecord], academic_year_start: Optional[int] = None) -> List[DayOfWeekRow]:
    by_school: Dict[str, List[DailyRecord]] = {}
    for r in records:
        by_school.setdefault(r.school_name, []).append(r)

    rows = []
    for school, recs in by_school.items():
        counts = _day_counts(recs, academic_year_start)
        days: Dict[str, DayStats] = {}
        best_day, best_rate = "", -1
        for day in DAY_ORDER:
            attended, possible = counts.get(day, (0, 0))
            rate = percent(attended, possible)
            days[day] = DayStats(attended=attended, possible=possible, rate=rate)
            # strict '>' keeps the earliest weekday on ties
            if possible > 0 and rate > best_rate:
                best_day, best_rate = day, rate
        rows.append(DayOfWeekRow(school=school, days=days, best_day=best_day))

    return sorted(rows, key=lambda r: (r.school.casefold(), r.school))


def get_aggregated_day_stats(records: Sequence[DailyRecord], academic_year_start: Optional[int] = None) -> List[AggregatedDayStats]:
    counts = _day_counts(records, academic_year_start)
    out = []
    for day in DAY_ORDER:
        attended, possible = counts.get(day, (0, 0))
        out.append(AggregatedDayStats(day=day, attended=attended, possible=possible, rate=percent(attended, possible)))
    return out
# =========================

# Chart series
# =========================
def _marks_by_label(record: DailyRecord) -> Dict[str, AttendanceMark]:
    # first occurrence wins, same as get_attendance_for_date
    out: Dict[str, AttendanceMark] = {}
    for label, mark in zip(record.dates, record.attendance):
        out.setdefault(label, mark)
    return out


def week_start(d: date) -> date:
    return d + relativedelta(weekday=MO(-1))


def format_week_label(d: date) -> str:
    return f"{d:%b} {d.day}"


def build_daily_chart_data(
    records: Sequence[DailyRecord],
    visible_dates: Sequence[str],
    academic_year_start: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Weekly attendance % per activity over the visible dates.
    Dates are bucketed by the Monday of their week.
    """
    if not records or not visible_dates:
        return []

    activities = list(dict.fromkeys(r.activity for r in records))

    weeks: Dict[date, List[str]] = {}
    for label in visible_dates:
        d = parse_date_label(label, academic_year_start)
        if d is None:
            continue
        weeks.setdefault(week_start(d), []).append(label)

    lookups = [(r.activity, _marks_by_label(r)) for r in records]

    points = []
    for monday, labels in weeks.items():
        point: Dict[str, Any] = {"weekLabel": format_week_label(monday)}
        for act in activities:
            marks = [lk.get(label, "") for a, lk in lookups if a == act for label in labels]
            yes, possible = _counts(marks)
            point[act] = percent(yes, possible)
        points.append(point)
    return points
