from __future__ import annotations
import os
import re
import json
import math
from datetime import date, datetime
from pathlib import Path
from typing import Any

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DATA_DIR = BASE_DIR / "data"

RULES_ENV = "ATTENDANCE_RULES_PATH"

def load_json(path: Path, default: Any):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception:
        return default

def rules_path() -> Path:
    override = os.environ.get(RULES_ENV)
    if override:
        return Path(override)
    return DEFAULT_DATA_DIR / "rules.json"

def load_rules() -> dict:
    """
    Thresholds and calendar settings.
    Built-in defaults are overlaid with whatever the rules file provides, so a
    partial override file only has to name the keys it changes.
    """
    rules = dict(load_json(DEFAULT_DATA_DIR / "rules.json", {}))
    custom = load_json(rules_path(), {})
    if isinstance(custom, dict):
        insights = {**rules.get("insights", {}), **custom.get("insights", {})}
        rules.update(custom)
        rules["insights"] = insights
    return rules

RULES = load_rules()

AT_RISK_THRESHOLD = float(RULES.get("at_risk_threshold", 60))
ACADEMIC_YEAR_START = int(RULES.get("academic_year_start", 2025))
DAILY_WINDOW = int(RULES.get("daily_window", 20))
TRUE_VALUES = frozenset(str(v).lower() for v in RULES.get("true_values", ["yes", "true", "1"]))
# =========================

# Text helpers
# =========================
_NBSP_RE = re.compile(r"[\u00A0\u2007\u202F]")
_LEADING_NUM_RE = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")


def is_missing(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    return False


def date_label(d: date) -> str:
    # same text a spreadsheet shows for a "mmm dd" formatted date
    return d.strftime("%b %d")


def cell_text(v: Any) -> str:
    """
    Renders a raw cell the way a spreadsheet displays it:
    - None / NaN -> ""
    - 12.0 -> "12"
    - datetime -> "Sep 01"
    """
    if is_missing(v):
        return ""
    if isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, (datetime, date)):
        return date_label(v)
    s = str(v).replace("\ufeff", "")
    return _NBSP_RE.sub(" ", s)


def norm_key(k: Any) -> str:
    # header keys: trim whitespace added by spreadsheet tools
    return cell_text(k).strip()


def is_blank(v: Any) -> bool:
    return not cell_text(v).strip()
# =========================

# Primitive coercion (total functions, never raise)
# =========================
def _as_number(n: float) -> int | float:
    if math.isnan(n) or math.isinf(n):
        return 0
    if float(n).is_integer():
        return int(n)
    return n


def parse_number(v: Any, lenient: bool = False) -> int | float:
    """
    Cell -> number. Thousands separators and '%' are dropped; anything that
    is empty or unparseable becomes 0.
    With `lenient`, text starting with a number keeps that number
    ("12 sessions" -> 12); otherwise it is unparseable.
    """
    if is_missing(v):
        return 0
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return _as_number(float(v))

    s = cell_text(v).replace(",", "").replace("%", "").strip()
    if not s:
        return 0
    try:
        return _as_number(float(s))
    except ValueError:
        pass

    if not lenient:
        return 0
    m = _LEADING_NUM_RE.match(s)
    if not m:
        return 0
    try:
        return _as_number(float(m.group(0)))
    except ValueError:
        return 0


def round_half_up(x: float) -> int:
    # 2.5 -> 3, -2.5 -> -2 (spreadsheet/JS rounding, not banker's)
    return int(math.floor(x + 0.5))


def parse_percent(v: Any) -> int:
    """
    0.85 and 85 both mean 85%.
    Values <= 1 are fractions and get scaled, larger values are already
    percentages. The result is clamped to 0..100.
    """
    n = parse_number(v, lenient=True)
    pct = round_half_up(n) if n > 1 else round_half_up(n * 100)
    return max(0, min(100, pct))


def parse_boolean(v: Any) -> bool:
    return cell_text(v).strip().lower() in TRUE_VALUES


def percent(part: float, whole: float) -> int:
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def mean(values) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)
