"""
This package contains:
- workbook loading (XLSX/CSV) into row dicts and 2D grids
- tolerant parsers for attendance, weekly and daily exports
- summaries, trend series and day-of-week analysis
- the insight rule engine
"""
from .errors import AttendanceCoreError, WorkbookReadError, NoValidRowsError
from .ingest import read_sheets, grid_to_rows, load_attendance, load_weekly, load_daily
from .attendance import (
    parse_attendance_rows, get_1to1_data, get_district_data, get_metrics,
    get_school_summaries, get_activity_summaries, get_category_summaries,
    get_type_summaries, get_county_summaries, get_district_summaries,
)
from .weekly import parse_weekly_grid, parse_weekly_sheets, get_weekly_metrics
from .daily import parse_daily_sheet, parse_daily_attendance, get_daily_metrics, get_day_of_week_stats, DAY_ORDER
from .insights import generate_insights

__all__ = [
    "AttendanceCoreError",
    "WorkbookReadError",
    "NoValidRowsError",
    "read_sheets",
    "grid_to_rows",
    "load_attendance",
    "load_weekly",
    "load_daily",
    "parse_attendance_rows",
    "get_1to1_data",
    "get_district_data",
    "get_metrics",
    "get_school_summaries",
    "get_activity_summaries",
    "get_category_summaries",
    "get_type_summaries",
    "get_county_summaries",
    "get_district_summaries",
    "parse_weekly_grid",
    "parse_weekly_sheets",
    "get_weekly_metrics",
    "parse_daily_sheet",
    "parse_daily_attendance",
    "get_daily_metrics",
    "get_day_of_week_stats",
    "DAY_ORDER",
    "generate_insights",
]
