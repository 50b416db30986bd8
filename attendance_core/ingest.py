from __future__ import annotations
import csv
import logging
from datetime import date, datetime
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Dict, List, Tuple
import pandas as pd
from openpyxl import load_workbook
from .attendance import REQUIRED_HEADERS, parse_attendance_rows
from .daily import parse_daily_attendance
from .errors import NoValidRowsError, WorkbookReadError
from .models import AttendanceRecord, DailyRecord, WeeklyRecord
from .utils import cell_text, date_label, is_blank
from .weekly import FIXED_COLUMNS, parse_weekly_sheets

logger = logging.getLogger(__name__)

Grid = List[List[Any]]
Sheet = Tuple[str, Grid]

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")
CSV_EXTENSIONS = (".csv",)
DAILY_HEADERS = ("Activity | Category | Type", "External ID", "Student Name", "Type")
# =========================

# Cells
# =========================
def _norm_cell(v: Any) -> Any:
    # raw cell -> None | str | int | float
    if v is None:
        return None
    if isinstance(v, (datetime, date)):
        if pd.isna(v):
            return None
        return date_label(v)
    if isinstance(v, float):
        if pd.isna(v):
            return None
        return int(v) if v.is_integer() else v
    if isinstance(v, (bool, int, str)):
        return v
    return cell_text(v)


def _pad(rows: List[List[Any]]) -> Grid:
    width = max((len(r) for r in rows), default=0)
    return [r + [None] * (width - len(r)) for r in rows]
# =========================

# Excel: every sheet as a grid of values
# =========================
def _read_excel_sheets(data: bytes) -> List[Sheet]:
    # merged cells are not unfolded: only the top-left cell keeps the value,
    # which is what section headers in daily sheets rely on
    wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    try:
        sheets = []
        for ws in wb.worksheets:
            rows = [[_norm_cell(v) for v in row] for row in ws.iter_rows(values_only=True)]
            sheets.append((ws.title, _pad(rows)))
        return sheets
    finally:
        wb.close()
# =========================

# CSV: tolerant read from bytes
# =========================
def _decode_sample(data: bytes, enc: str, limit: int = 65536) -> str:
    try:
        return data[:limit].decode(enc, errors="replace")
    except LookupError:
        return data[:limit].decode("utf-8", errors="replace")


def _guess_delimiter(sample_text: str) -> str:
    # exports use ',' (en-US) or ';' (other locales), sometimes tabs
    try:
        dialect = csv.Sniffer().sniff(sample_text, delimiters=";,\t|")
        if dialect.delimiter:
            return dialect.delimiter
    except csv.Error:
        pass

    # fallback: the delimiter seen most often per line
    candidates = [",", ";", "\t", "|"]
    lines = [ln for ln in sample_text.splitlines() if ln.strip()][:20]
    if not lines:
        return ","

    scores = {d: sum(ln.count(d) for ln in lines) / len(lines) for d in candidates}
    best = max(scores.items(), key=lambda x: x[1])[0]
    return best if scores.get(best, 0) > 0 else ","


def _field_count(text: str, delim: str) -> int:
    return max((len(row) for row in csv.reader(StringIO(text), delimiter=delim)), default=0)


def _read_csv_grid(data: bytes) -> Grid:
    # no header row: the grid keeps the header as its first row
    last_err: Exception | None = None
    for enc in ["utf-8-sig", "utf-8", "cp1252"]:
        try:
            delim = _guess_delimiter(_decode_sample(data, enc))
            # daily section headers are one cell wide: size columns by the widest row
            width = _field_count(data.decode(enc), delim)
            if width == 0:
                return []
            df = pd.read_csv(
                BytesIO(data),
                header=None,
                names=list(range(width)),
                sep=delim,
                engine="python",
                encoding=enc,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
            df = df.fillna("")
            return _pad([[_norm_cell(v) for v in row] for row in df.values.tolist()])
        except (UnicodeDecodeError, csv.Error, pd.errors.ParserError) as e:
            last_err = e
            continue

    raise last_err or ValueError("unreadable CSV")
# =========================

# Main: bytes -> sheets
# =========================
def read_sheets(data: bytes, filename: str) -> List[Sheet]:
    """
    Returns [(sheet_name, grid), ...] in workbook order.
    A CSV is a single sheet named after the file.
    Raises WorkbookReadError when the file is not a readable spreadsheet.
    """
    ext = Path(filename).suffix.lower()
    if ext not in EXCEL_EXTENSIONS + CSV_EXTENSIONS:
        raise WorkbookReadError(filename, f"unsupported extension {ext or '(none)'}")

    try:
        if ext in CSV_EXTENSIONS:
            sheets = [(Path(filename).stem, _read_csv_grid(data))]
        else:
            sheets = _read_excel_sheets(data)
    except Exception as e:
        logger.warning("failed to read %s: %s", filename, e)
        raise WorkbookReadError(filename, str(e)) from e

    logger.info("read %s: %d sheet(s)", filename, len(sheets))
    return sheets


def grid_to_rows(grid: Grid) -> List[Dict[str, Any]]:
    """
    Header-keyed rows: the first non-blank row is the header, blank rows are
    skipped, columns without a header are dropped, repeated headers get a
    numeric suffix ("Type", "Type_1").
    """
    start = next((i for i, row in enumerate(grid) if not all(is_blank(c) for c in row)), None)
    if start is None:
        return []

    keys: List[Tuple[int, str]] = []
    seen: Dict[str, int] = {}
    for j, h in enumerate(grid[start]):
        name = cell_text(h)
        if not name.strip():
            continue
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        keys.append((j, name))

    rows = []
    for row in grid[start + 1:]:
        if all(is_blank(c) for c in row):
            continue
        rows.append({name: row[j] if j < len(row) else None for j, name in keys})
    return rows
# =========================

# Loaders per data kind
# =========================
def load_attendance(data: bytes, filename: str) -> List[AttendanceRecord]:
    sheets = read_sheets(data, filename)
    rows: List[Dict[str, Any]] = []
    for _, grid in sheets:
        rows.extend(grid_to_rows(grid))

    records = parse_attendance_rows(rows)
    if not records:
        raise NoValidRowsError("attendance", REQUIRED_HEADERS)
    logger.info("attendance %s: %d records", filename, len(records))
    return records


def load_weekly(data: bytes, filename: str) -> List[WeeklyRecord]:
    records = parse_weekly_sheets([grid for _, grid in read_sheets(data, filename)])
    if not records:
        raise NoValidRowsError("weekly", FIXED_COLUMNS)
    logger.info("weekly %s: %d records", filename, len(records))
    return records


def load_daily(data: bytes, filename: str) -> List[DailyRecord]:
    records = parse_daily_attendance(read_sheets(data, filename))
    if not records:
        raise NoValidRowsError("daily", DAILY_HEADERS)
    logger.info("daily %s: %d records", filename, len(records))
    return records
