"""
Shared fixtures: in-memory workbooks and record factories.

Usage:
    pytest tests/ -v
"""

from io import BytesIO

import pytest
from openpyxl import Workbook

from attendance_core.models import AttendanceRecord, WeekData, WeeklyRecord


def make_record(**kw) -> AttendanceRecord:
    base = dict(
        district="", student_name="Student", school_name="School", county="",
        activity="Chess", category="", type="", enrolled=True, waitlist=False,
        total_classes=10, total_attendance=5, attendance_rate=80, last5_sessions=3,
    )
    base.update(kw)
    return AttendanceRecord(**base)


def make_weekly(school="School", activity="Chess", capacity=20, enrolled=20, waitroom=0,
                att=(80, 80), district="") -> WeeklyRecord:
    weeks = tuple(
        WeekData(week_label=f"Week {i + 1}", enrollment=enrolled, ada=0, att_pct=a)
        for i, a in enumerate(att)
    )
    return WeeklyRecord(
        district=district, school_name=school, county="", activity=activity, category="", type="",
        max_capacity=capacity, total_enrolled=enrolled, waitroom=waitroom, weeks=weeks,
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def weekly_factory():
    return make_weekly


@pytest.fixture
def workbook_bytes():
    """
    Builds an .xlsx in memory.

    Usage:
        data = workbook_bytes({"Sheet A": [["h1", "h2"], [1, 2]]})
    """
    def factory(sheets: dict, merges: dict = None) -> bytes:
        wb = Workbook()
        wb.remove(wb.active)
        for name, rows in sheets.items():
            ws = wb.create_sheet(title=name)
            for row in rows:
                ws.append(list(row))
            for rng in (merges or {}).get(name, []):
                ws.merge_cells(rng)
        bio = BytesIO()
        wb.save(bio)
        return bio.getvalue()
    return factory
