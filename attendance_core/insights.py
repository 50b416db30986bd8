"""
Rule-based findings over the loaded attendance, weekly and daily data.

Every detector is a plain function of the record sets and nothing else: the
engine hands each one the same inputs, never another detector's output, so
adding or removing a detector leaves the others' findings untouched.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple, TypeVar
from .models import AttendanceRecord, DailyRecord, InsightItem, WeeklyRecord
from .utils import AT_RISK_THRESHOLD, RULES, mean, round_half_up

logger = logging.getLogger(__name__)

T = TypeVar("T")

TH = RULES.get("insights", {})
SEVERITY_ORDER = {"critical": 0, "warning": 1, "opportunity": 2}


@dataclass(frozen=True)
class InsightInputs:
    attendance: Tuple[AttendanceRecord, ...]
    districts: Tuple[AttendanceRecord, ...]
    weekly: Tuple[WeeklyRecord, ...]
    daily: Tuple[DailyRecord, ...]
# =========================

# Helpers
# =========================
def _group_by(items: Sequence[T], key: Callable[[T], str]) -> Dict[str, List[T]]:
    out: Dict[str, List[T]] = {}
    for it in items:
        out.setdefault(key(it), []).append(it)
    return out


def _plural(n: float, word: str) -> str:
    n = int(n)
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def _enroll_rate(records: Sequence[AttendanceRecord]) -> float:
    return sum(1 for r in records if r.enrolled) / len(records) * 100


def _avg_rate(records: Sequence[AttendanceRecord]) -> float:
    return mean(r.attendance_rate for r in records)
# =========================

# Attendance detectors
# =========================
def detect_district_gap(
    records: Sequence[AttendanceRecord],
    min_gap: float = TH.get("district_gap_pp", 15),
) -> List[InsightItem]:
    by_district = _group_by([r for r in records if r.district], lambda r: r.district)
    if len(by_district) < 2:
        return []

    avgs = [(d, _avg_rate(recs), len(recs)) for d, recs in by_district.items()]
    # on equal averages the later district wins
    best = worst = avgs[0]
    for d in avgs[1:]:
        if d[1] >= best[1]:
            best = d
        if d[1] <= worst[1]:
            worst = d
    gap = best[1] - worst[1]
    if gap < min_gap:
        return []

    return [InsightItem(
        id="district-gap",
        severity="critical",
        pattern="District Attendance Gap",
        finding=(
            f"{worst[0]} averages {round_half_up(worst[1])}% attendance, {round_half_up(gap)}pp below "
            f"{best[0]} ({round_half_up(best[1])}%). Every school in the lower district trails."
        ),
        affected=worst[0],
        students_impacted=worst[2],
        action=(
            f"Run a district-level program review for {worst[0]}: assign a family engagement coordinator, "
            "add an attendance incentive and check for schedule or transportation barriers."
        ),
    )]


def detect_high_risk_schools(
    records: Sequence[AttendanceRecord],
    min_share: float = TH.get("high_risk_share", 0.35),
    at_risk_threshold: float = AT_RISK_THRESHOLD,
) -> List[InsightItem]:
    out = []
    for school, recs in _group_by(records, lambda r: r.school_name).items():
        at_risk = sum(1 for r in recs if r.attendance_rate < at_risk_threshold)
        share = at_risk / len(recs)
        if share < min_share:
            continue
        out.append(InsightItem(
            id=f"high-risk-{school}",
            severity="critical",
            pattern="High At-Risk Concentration",
            finding=(
                f"{at_risk} of {len(recs)} students ({round_half_up(share * 100)}%) at {school} "
                f"attend less than {round_half_up(at_risk_threshold)}% of sessions."
            ),
            affected=school,
            students_impacted=at_risk,
            action=(
                f"Reach out to the at-risk students at {school} with make-up sessions and 1-on-1 check-ins, "
                "and remove the logistical barriers keeping them away."
            ),
        ))
    return out


def detect_commitment_gap(
    records: Sequence[AttendanceRecord],
    margin: float = TH.get("commitment_gap_pp", 8),
) -> List[InsightItem]:
    """High enrollment but attendance well below the overall average."""
    if not records:
        return []
    overall_att = _avg_rate(records)
    overall_enroll = _enroll_rate(records)

    out = []
    for activity, recs in _group_by(records, lambda r: r.activity).items():
        enroll = _enroll_rate(recs)
        att = _avg_rate(recs)
        if enroll > overall_enroll and att < overall_att - margin:
            out.append(InsightItem(
                id=f"commit-gap-{activity}",
                severity="warning",
                pattern="Commitment Gap",
                finding=(
                    f"{activity} has {round_half_up(enroll)}% enrollment (above average) but only "
                    f"{round_half_up(att)}% attendance ({round_half_up(overall_att - att)}pp below average). "
                    "Students sign up and then stop showing up."
                ),
                affected=activity,
                students_impacted=sum(1 for r in recs if r.enrolled),
                action=(
                    f"Review how {activity} is delivered: scheduling conflicts, instructor engagement and format. "
                    "Survey enrolled students about missed sessions and adjust."
                ),
            ))
    return out


def detect_underperforming_activities(
    records: Sequence[AttendanceRecord],
    margin: float = TH.get("underperforming_margin_pp", 5),
    max_waitlist: int = TH.get("underperforming_max_waitlist", 15),
) -> List[InsightItem]:
    if not records:
        return []
    overall_att = _avg_rate(records)
    overall_enroll = _enroll_rate(records)

    out = []
    for activity, recs in _group_by(records, lambda r: r.activity).items():
        enroll = _enroll_rate(recs)
        att = _avg_rate(recs)
        waitlist = sum(1 for r in recs if r.waitlist)
        if enroll < overall_enroll - margin and att < overall_att - margin and waitlist < max_waitlist:
            out.append(InsightItem(
                id=f"weak-activity-{activity}",
                severity="warning",
                pattern="Underperforming Activity",
                finding=(
                    f"{activity} is low on both enrollment ({round_half_up(enroll)}%) and attendance "
                    f"({round_half_up(att)}%) with only {_plural(waitlist, 'student')} waitlisted: "
                    "weak demand and poor retention."
                ),
                affected=activity,
                students_impacted=len(recs),
                action=(
                    f"Decide whether to restructure or retire {activity}. If it stays, relaunch it with a new "
                    "format, a demo day or a trial offer."
                ),
            ))
    return out


def detect_expansion_opportunities(
    records: Sequence[AttendanceRecord],
    weekly: Sequence[WeeklyRecord] = (),
    margin: float = TH.get("expansion_margin_pp", 3),
    max_records: int = TH.get("expansion_max_records", 60),
) -> List[InsightItem]:
    """High attendance but offered at no more than half of the schools."""
    if not records:
        return []
    overall_att = _avg_rate(records)
    total_schools = len({r.school_name for r in records})

    out = []
    for activity, recs in _group_by(records, lambda r: r.activity).items():
        att = _avg_rate(recs)
        school_count = len({r.school_name for r in recs})
        if att > overall_att + margin and school_count <= total_schools / 2 and len(recs) < max_records:
            waitlisted = int(sum(w.waitroom for w in weekly if w.activity == activity))
            demand = f"{waitlisted} students are already waitlisted." if waitlisted > 0 else "Unmet demand likely exists."
            missing = total_schools - school_count
            out.append(InsightItem(
                id=f"expand-{activity}",
                severity="opportunity",
                pattern="Expansion Opportunity",
                finding=(
                    f"{activity} has a {round_half_up(att)}% attendance rate (above average) but runs at only "
                    f"{school_count} of {total_schools} schools. {demand}"
                ),
                affected=f"{_plural(school_count, 'school')} currently",
                students_impacted=missing,
                action=(
                    f"Offer {activity} at the remaining {_plural(missing, 'school')}, starting with those "
                    "whose overall attendance is lowest."
                ),
            ))
    return out


def detect_independent_school_plateau(
    records: Sequence[AttendanceRecord],
    min_gap: float = TH.get("independent_gap_pp", 5),
) -> List[InsightItem]:
    independent = [r for r in records if r.is_independent]
    affiliated = [r for r in records if not r.is_independent]
    if not independent or not affiliated:
        return []

    ind_avg = _avg_rate(independent)
    dist_avg = _avg_rate(affiliated)
    # only a meaningful shortfall is reported
    if dist_avg - ind_avg < min_gap:
        return []

    ind_schools = len({r.school_name for r in independent})
    return [InsightItem(
        id="independent-plateau",
        severity="warning",
        pattern="Independent Schools Underperform",
        finding=(
            f"{_plural(ind_schools, 'school')} without a district average {round_half_up(ind_avg)}% attendance, "
            f"{round_half_up(dist_avg - ind_avg)}pp below district schools ({round_half_up(dist_avg)}%)."
        ),
        affected=f"{_plural(ind_schools, 'independent school')}",
        students_impacted=len(independent),
        action=(
            "Set up a peer network for independent schools and give them a regional coordinator with the "
            "same support and accountability district schools get."
        ),
    )]
# =========================

# Weekly detectors
# =========================
def detect_open_slots_with_waitlist(weekly: Sequence[WeeklyRecord]) -> List[InsightItem]:
    out = []
    for r in weekly:
        open_slots = r.max_capacity - r.total_enrolled
        if open_slots <= 0 or r.waitroom <= 0:
            continue
        convertible = min(open_slots, r.waitroom)
        out.append(InsightItem(
            id=f"open-slots-{r.school_name}-{r.activity}",
            severity="critical",
            pattern="Waitlisted Students Not Enrolled",
            finding=(
                f"{r.school_name} / {r.activity} has {_plural(open_slots, 'open seat')} and "
                f"{_plural(r.waitroom, 'student')} on the waitlist. {_plural(convertible, 'student')} "
                "could enroll right away."
            ),
            affected=f"{r.school_name} · {r.activity}",
            students_impacted=int(convertible),
            action=(
                f"Contact the {int(r.waitroom)} waitlisted students for {r.activity} at {r.school_name} to fill "
                f"the {int(open_slots)} open seats and confirm spots within 48 hours."
            ),
        ))
    return out


def detect_week2_drops(
    weekly: Sequence[WeeklyRecord],
    min_drop: float = TH.get("week2_drop_pp", 15),
    min_pct: float = TH.get("week2_min_pct", 10),
) -> List[InsightItem]:
    out = []
    for r in weekly:
        if len(r.weeks) < 2:
            continue
        w1, w2 = r.weeks[0].att_pct, r.weeks[1].att_pct
        # weeks near zero are missing data, not a drop
        if w1 < min_pct or w2 < min_pct:
            continue
        drop = w1 - w2
        if drop < min_drop:
            continue
        out.append(InsightItem(
            id=f"week2-drop-{r.school_name}-{r.activity}",
            severity="warning",
            pattern="Early Disengagement",
            finding=(
                f"{r.school_name} / {r.activity} fell from {w1}% to {w2}% attendance in week 2 "
                f"(-{drop}pp). A strong start followed by a fast falloff."
            ),
            affected=f"{r.school_name} · {r.activity}",
            students_impacted=int(r.total_enrolled),
            action=(
                f"Follow up with students who missed week 2 of {r.activity} at {r.school_name}, remind "
                "parents/guardians and plan an engagement hook for week 3."
            ),
        ))
    return out


def detect_oversubscribed_activities(
    weekly: Sequence[WeeklyRecord],
    min_schools: int = TH.get("oversubscribed_min_schools", 2),
    min_waitroom: float = TH.get("oversubscribed_min_waitroom", 8),
) -> List[InsightItem]:
    out = []
    for activity, recs in _group_by(weekly, lambda r: r.activity).items():
        full = list(dict.fromkeys(r.school_name for r in recs if r.total_enrolled >= r.max_capacity))
        waitroom = sum(r.waitroom for r in recs)
        if len(full) < min_schools or waitroom < min_waitroom:
            continue
        out.append(InsightItem(
            id=f"oversubscribed-{activity}",
            severity="opportunity",
            pattern="Oversubscribed Activity",
            finding=(
                f"{activity} is full at {len(full)} schools with {int(waitroom)} students waitlisted in total. "
                "Demand exceeds supply."
            ),
            affected=", ".join(full),
            students_impacted=int(waitroom),
            action=(
                f"Add a second section of {activity} where it is full or open it at schools that do not offer "
                "it yet, and move waitlisted students in as seats open."
            ),
        ))
    return out
# =========================

# Engine
# =========================
Detector = Callable[[InsightInputs], List[InsightItem]]

DETECTORS: Tuple[Tuple[str, Detector], ...] = (
    ("district-gap", lambda d: detect_district_gap(d.districts)),
    ("high-risk-schools", lambda d: detect_high_risk_schools(d.attendance)),
    ("open-slots", lambda d: detect_open_slots_with_waitlist(d.weekly)),
    ("week2-drops", lambda d: detect_week2_drops(d.weekly)),
    ("commitment-gap", lambda d: detect_commitment_gap(d.attendance)),
    ("underperforming", lambda d: detect_underperforming_activities(d.attendance)),
    ("oversubscribed", lambda d: detect_oversubscribed_activities(d.weekly)),
    ("expansion", lambda d: detect_expansion_opportunities(d.attendance, d.weekly)),
    ("independent-plateau", lambda d: detect_independent_school_plateau(d.attendance)),
)


def sort_insights(items: Sequence[InsightItem]) -> List[InsightItem]:
    # critical -> warning -> opportunity, then most students first
    return sorted(items, key=lambda i: (SEVERITY_ORDER.get(i.severity, 99), -i.students_impacted))


def generate_insights(
    records_1to1: Sequence[AttendanceRecord],
    records_districts: Sequence[AttendanceRecord],
    weekly: Sequence[WeeklyRecord] = (),
    daily: Sequence[DailyRecord] = (),
    detectors: Sequence[Tuple[str, Detector]] = DETECTORS,
) -> List[InsightItem]:
    inputs = InsightInputs(
        attendance=tuple(records_1to1) + tuple(records_districts),
        districts=tuple(records_districts),
        weekly=tuple(weekly),
        daily=tuple(daily),
    )

    items: List[InsightItem] = []
    for name, detect in detectors:
        found = detect(inputs)
        logger.debug("detector %s: %d findings", name, len(found))
        items.extend(found)
    return sort_insights(items)
