from __future__ import annotations
import logging
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Sequence
import pandas as pd
from .models import (
    AttendanceRecord, AttendanceMetrics, AttendanceOptions,
    SchoolSummary, ActivitySummary, CategorySummary, TypeSummary,
    CountySummary, DistrictSummary,
)
from .utils import (
    AT_RISK_THRESHOLD, cell_text, is_blank, norm_key, mean,
    parse_boolean, parse_number, parse_percent, percent, round_half_up,
)

logger = logging.getLogger(__name__)

UNKNOWN_SCHOOL = "Unknown School"
UNKNOWN = "Unknown"
ALL = "all"

# Headers recognised in attendance exports
ATTENDANCE_HEADERS = [
    "Student Name", "District", "School Name", "County", "Activity", "Category", "Type",
    "Enrolled?", "Waitlist", "Total Classes", "Total Attendance%", "Attendance",
    "Attendance last 5 sessions", "Parent 1 Name", "Parent 1 Email", "Parent 1 Phone",
    "Parent 2 Name", "Parent 2 Email", "Parent 2 Phone", "External ID",
]
REQUIRED_HEADERS = [
    "Student Name", "School Name", "Activity", "Enrolled?", "Total Classes",
    "Total Attendance%", "Attendance", "Attendance last 5 sessions",
]
# =========================

# Parsing
# =========================
def _normalize_row(row: Dict[Any, Any]) -> Dict[str, Any]:
    return {norm_key(k): v for k, v in row.items()}


def _text(row: Dict[str, Any], col: str) -> str:
    return cell_text(row.get(col))


def parse_attendance_row(row: Dict[str, Any]) -> AttendanceRecord:
    school = _text(row, "School Name")
    return AttendanceRecord(
        district=_text(row, "District").strip(),
        student_name=_text(row, "Student Name"),
        school_name=school if school.strip() else UNKNOWN_SCHOOL,
        county=_text(row, "County").strip(),
        activity=_text(row, "Activity"),
        category=_text(row, "Category").strip(),
        type=_text(row, "Type").strip(),
        enrolled=parse_boolean(row.get("Enrolled?")),
        waitlist=parse_boolean(row.get("Waitlist")),
        total_classes=parse_number(row.get("Total Classes")),
        total_attendance=parse_number(row.get("Attendance")),
        attendance_rate=parse_percent(row.get("Total Attendance%")),
        last5_sessions=parse_number(row.get("Attendance last 5 sessions")),
        parent1_name=_text(row, "Parent 1 Name"),
        parent1_email=_text(row, "Parent 1 Email"),
        parent1_phone=_text(row, "Parent 1 Phone"),
        parent2_name=_text(row, "Parent 2 Name"),
        parent2_email=_text(row, "Parent 2 Email"),
        parent2_phone=_text(row, "Parent 2 Phone"),
        external_id=_text(row, "External ID"),
    )


def parse_attendance_rows(rows: Iterable[Dict[Any, Any]]) -> List[AttendanceRecord]:
    """
    Rows come from every sheet of one workbook (sheet order, then row order).
    A row is dropped only when both the student and the school are empty;
    everything else is coerced into a best-effort record.
    """
    out: List[AttendanceRecord] = []
    skipped = 0
    for raw in rows:
        row = _normalize_row(raw)
        if is_blank(row.get("Student Name")) and is_blank(row.get("School Name")):
            skipped += 1
            continue
        out.append(parse_attendance_row(row))

    logger.debug("attendance rows: %d parsed, %d skipped", len(out), skipped)
    return out
# =========================

# Views & filters
# =========================
def get_1to1_data(records: Sequence[AttendanceRecord]) -> List[AttendanceRecord]:
    return [r for r in records if r.is_independent]


def get_district_data(records: Sequence[AttendanceRecord]) -> List[AttendanceRecord]:
    return [r for r in records if not r.is_independent]


def get_schools(records: Sequence[AttendanceRecord]) -> List[str]:
    return sorted({r.school_name for r in records})


def get_districts(records: Sequence[AttendanceRecord]) -> List[str]:
    return sorted({r.district for r in records if r.district})


def get_attendance_options(records: Sequence[AttendanceRecord]) -> AttendanceOptions:
    return AttendanceOptions(
        schools=tuple(get_schools(records)),
        districts=tuple(get_districts(records)),
        activities=tuple(sorted({r.activity for r in records if r.activity})),
        categories=tuple(sorted({r.category for r in records if r.category})),
    )


def filter_data(records: Sequence[AttendanceRecord], school: str) -> List[AttendanceRecord]:
    return [r for r in records if school == ALL or r.school_name == school]


def filter_by_district(records: Sequence[AttendanceRecord], district: str) -> List[AttendanceRecord]:
    return [r for r in records if district == ALL or r.district == district]


def get_zero_attendance(records: Sequence[AttendanceRecord]) -> List[AttendanceRecord]:
    # students enrolled in the roster that never showed up
    return [r for r in records if r.total_attendance == 0]
# =========================

# Metrics & summaries
# =========================
def get_metrics(records: Sequence[AttendanceRecord], at_risk_threshold: float = AT_RISK_THRESHOLD) -> AttendanceMetrics:
    total = len(records)
    if total == 0:
        return AttendanceMetrics(0, 0, 0, 0, 0)
    return AttendanceMetrics(
        total_students=total,
        enrolled=sum(1 for r in records if r.enrolled),
        avg_attendance_rate=round_half_up(mean(r.attendance_rate for r in records)),
        at_risk=sum(1 for r in records if r.attendance_rate < at_risk_threshold),
        avg_last5=round_half_up(mean(r.last5_sessions for r in records)),
    )


def _records_frame(records: Sequence[AttendanceRecord], at_risk_threshold: float) -> pd.DataFrame:
    df = pd.DataFrame([asdict(r) for r in records])
    df["at_risk"] = df["attendance_rate"] < at_risk_threshold
    # distinct schools are counted from a copy; the group key column is not aggregated
    df["school"] = df["school_name"]
    return df


def _group_stats(
    records: Sequence[AttendanceRecord],
    key: str,
    unknown: str | None = None,
    at_risk_threshold: float = AT_RISK_THRESHOLD,
) -> List[Dict[str, Any]]:
    """
    Groups records by one field (first-seen order) and reduces each group.
    Empty keys are folded into `unknown` when given.
    """
    if not records:
        return []

    df = _records_frame(records, at_risk_threshold)
    if unknown is not None:
        df[key] = df[key].map(lambda v: v if v else unknown)

    grp = df.groupby(key, sort=False).agg(
        total_students=("attendance_rate", "size"),
        enrolled=("enrolled", "sum"),
        rate_mean=("attendance_rate", "mean"),
        last5_mean=("last5_sessions", "mean"),
        at_risk=("at_risk", "sum"),
        schools=("school", "nunique"),
    ).reset_index()

    rows = []
    for r in grp.itertuples(index=False):
        total = int(r.total_students)
        enrolled = int(r.enrolled)
        rows.append({
            "key": str(getattr(r, key)),
            "total_students": total,
            "enrolled": enrolled,
            "enrollment_rate": percent(enrolled, total),
            "avg_attendance_rate": round_half_up(float(r.rate_mean)),
            "avg_last5": round_half_up(float(r.last5_mean)),
            "at_risk": int(r.at_risk),
            "schools": int(r.schools),
        })
    return rows


def get_school_summaries(records: Sequence[AttendanceRecord]) -> List[SchoolSummary]:
    return [
        SchoolSummary(
            school=g["key"],
            total_students=g["total_students"],
            enrolled=g["enrolled"],
            enrollment_rate=g["enrollment_rate"],
            avg_attendance_rate=g["avg_attendance_rate"],
            avg_last5=g["avg_last5"],
        )
        for g in _group_stats(records, "school_name")
    ]


def get_activity_summaries(records: Sequence[AttendanceRecord]) -> List[ActivitySummary]:
    out = [
        ActivitySummary(g["key"], g["total_students"], g["enrolled"], g["enrollment_rate"], g["avg_attendance_rate"])
        for g in _group_stats(records, "activity", unknown=UNKNOWN)
    ]
    return sorted(out, key=lambda s: -s.enrollment_rate)


def get_category_summaries(records: Sequence[AttendanceRecord]) -> List[CategorySummary]:
    out = [
        CategorySummary(g["key"], g["total_students"], g["enrolled"], g["enrollment_rate"], g["avg_attendance_rate"])
        for g in _group_stats(records, "category", unknown=UNKNOWN)
    ]
    return sorted(out, key=lambda s: -s.enrollment_rate)


def get_type_summaries(records: Sequence[AttendanceRecord]) -> List[TypeSummary]:
    out = [
        TypeSummary(g["key"], g["total_students"], g["enrolled"], g["enrollment_rate"], g["avg_attendance_rate"])
        for g in _group_stats(records, "type", unknown=UNKNOWN)
    ]
    return sorted(out, key=lambda s: -s.enrollment_rate)


def get_county_summaries(records: Sequence[AttendanceRecord]) -> List[CountySummary]:
    return [
        CountySummary(g["key"], g["total_students"], g["avg_attendance_rate"])
        for g in _group_stats(records, "county", unknown=UNKNOWN)
    ]


def get_district_summaries(
    records: Sequence[AttendanceRecord],
    at_risk_threshold: float = AT_RISK_THRESHOLD,
) -> List[DistrictSummary]:
    out = [
        DistrictSummary(
            district=g["key"],
            total_students=g["total_students"],
            enrolled=g["enrolled"],
            enrollment_rate=g["enrollment_rate"],
            avg_attendance_rate=g["avg_attendance_rate"],
            avg_last5=g["avg_last5"],
            at_risk=g["at_risk"],
            schools=g["schools"],
        )
        for g in _group_stats(records, "district", at_risk_threshold=at_risk_threshold)
    ]
    return sorted(out, key=lambda s: -s.avg_attendance_rate)
