"""Typed records parsed from attendance workbooks and the summaries derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Literal, Tuple

AttendanceMark = Literal["Yes", "No", ""]
Severity = Literal["critical", "warning", "opportunity"]
WeeklyMetric = Literal["enrollment", "ada", "attPct"]


# =========================
# Records
# =========================
@dataclass(frozen=True)
class AttendanceRecord:
    """One student x one activity enrollment snapshot."""
    district: str
    student_name: str
    school_name: str
    county: str
    activity: str
    category: str
    type: str
    enrolled: bool
    waitlist: bool
    total_classes: float
    total_attendance: float
    attendance_rate: int  # 0..100
    last5_sessions: float
    parent1_name: str = ""
    parent1_email: str = ""
    parent1_phone: str = ""
    parent2_name: str = ""
    parent2_email: str = ""
    parent2_phone: str = ""
    external_id: str = ""

    @property
    def is_independent(self) -> bool:
        return not self.district.strip()


@dataclass(frozen=True)
class WeekData:
    week_label: str
    enrollment: float
    ada: float
    att_pct: int  # 0..100


@dataclass(frozen=True)
class WeeklyRecord:
    """Capacity and week-by-week metrics for one school x activity."""
    district: str
    school_name: str
    county: str
    activity: str
    category: str
    type: str
    max_capacity: float
    total_enrolled: float
    waitroom: float
    weeks: Tuple[WeekData, ...] = ()

    @property
    def is_independent(self) -> bool:
        return not self.district.strip()


@dataclass(frozen=True)
class DailyRecord:
    """
    Date-indexed attendance history of one student in one activity.
    dates[i] labels attendance[i]; records from different sections may carry
    different date sequences, so look marks up by label.
    """
    external_id: str
    student_name: str
    district: str
    school_name: str
    county: str
    activity: str
    category: str
    type: str
    dates: Tuple[str, ...] = ()
    attendance: Tuple[AttendanceMark, ...] = ()

    @property
    def is_independent(self) -> bool:
        return not self.district.strip()


# =========================
# Attendance summaries
# =========================
@dataclass(frozen=True)
class AttendanceMetrics:
    total_students: int
    enrolled: int
    avg_attendance_rate: int
    at_risk: int
    avg_last5: int


@dataclass(frozen=True)
class SchoolSummary:
    school: str
    total_students: int
    enrolled: int
    enrollment_rate: int
    avg_attendance_rate: int
    avg_last5: int


@dataclass(frozen=True)
class ActivitySummary:
    activity: str
    total_students: int
    enrolled: int
    enrollment_rate: int
    avg_attendance_rate: int


@dataclass(frozen=True)
class CategorySummary:
    category: str
    total_students: int
    enrolled: int
    enrollment_rate: int
    avg_attendance_rate: int


@dataclass(frozen=True)
class TypeSummary:
    type: str
    total_students: int
    enrolled: int
    enrollment_rate: int
    avg_attendance_rate: int


@dataclass(frozen=True)
class CountySummary:
    county: str
    total_students: int
    avg_attendance_rate: int


@dataclass(frozen=True)
class DistrictSummary:
    district: str
    total_students: int
    enrolled: int
    enrollment_rate: int
    avg_attendance_rate: int
    avg_last5: int
    at_risk: int
    schools: int


@dataclass(frozen=True)
class AttendanceOptions:
    schools: Tuple[str, ...]
    districts: Tuple[str, ...]
    activities: Tuple[str, ...]
    categories: Tuple[str, ...]


# =========================
# Weekly summaries
# =========================
@dataclass(frozen=True)
class WeeklyMetrics:
    max_capacity: float
    total_enrolled: float
    waitroom: float
    latest_attended: float
    enrollment_rate: int


@dataclass(frozen=True)
class WeeklyOptions:
    districts: Tuple[str, ...]
    schools: Tuple[str, ...]
    activities: Tuple[str, ...]
    categories: Tuple[str, ...]
    week_labels: Tuple[str, ...]


# =========================
# Daily summaries
# =========================
@dataclass(frozen=True)
class DailyMetrics:
    total_students: int
    overall_rate: int
    at_risk: int
    total_present: int


@dataclass(frozen=True)
class DailyOptions:
    schools: Tuple[str, ...]
    activities: Tuple[str, ...]
    districts: Tuple[str, ...]
    categories: Tuple[str, ...]


@dataclass(frozen=True)
class DayStats:
    attended: int = 0
    possible: int = 0
    rate: int = 0  # 0..100


@dataclass(frozen=True)
class DayOfWeekRow:
    school: str
    days: Dict[str, DayStats] = field(default_factory=dict)
    best_day: str = ""


@dataclass(frozen=True)
class AggregatedDayStats:
    day: str
    attended: int
    possible: int
    rate: int


# =========================
# Insights
# =========================
@dataclass(frozen=True)
class InsightItem:
    id: str
    severity: Severity
    pattern: str
    finding: str
    affected: str
    students_impacted: int
    action: str
