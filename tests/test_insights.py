"""
Tests for the insight detectors and the engine that runs them.
"""

import pytest

from attendance_core.insights import (
    DETECTORS, detect_commitment_gap, detect_district_gap, detect_expansion_opportunities,
    detect_high_risk_schools, detect_independent_school_plateau, detect_open_slots_with_waitlist,
    detect_oversubscribed_activities, detect_underperforming_activities, detect_week2_drops,
    generate_insights, sort_insights,
)
from attendance_core.models import InsightItem


def item(id, severity, impacted):
    return InsightItem(id=id, severity=severity, pattern="", finding="", affected="",
                       students_impacted=impacted, action="")


# =============================================================================
# ATTENDANCE DETECTORS
# =============================================================================

class TestDistrictGap:

    def test_gap_names_lower_district(self, record_factory):
        recs = [record_factory(district="Alpha", attendance_rate=40),
                record_factory(district="Alpha", attendance_rate=40),
                record_factory(district="Beta", attendance_rate=70)]
        [found] = detect_district_gap(recs)
        assert found.id == "district-gap"
        assert found.severity == "critical"
        assert found.affected == "Alpha"
        assert found.students_impacted == 2
        assert "30pp" in found.finding

    def test_small_gap_ignored(self, record_factory):
        recs = [record_factory(district="Alpha", attendance_rate=60),
                record_factory(district="Beta", attendance_rate=70)]
        assert detect_district_gap(recs) == []

    def test_tied_worst_names_later_district(self, record_factory):
        recs = [record_factory(district="Alpha", attendance_rate=40),
                record_factory(district="Beta", attendance_rate=40),
                record_factory(district="Gamma", attendance_rate=70)]
        [found] = detect_district_gap(recs)
        assert found.affected == "Beta"

    def test_tied_best_names_later_district(self, record_factory):
        recs = [record_factory(district="Alpha", attendance_rate=40),
                record_factory(district="Beta", attendance_rate=80),
                record_factory(district="Gamma", attendance_rate=80)]
        [found] = detect_district_gap(recs)
        assert "below Gamma" in found.finding

    def test_needs_two_districts(self, record_factory):
        recs = [record_factory(district="Alpha", attendance_rate=10),
                record_factory(district="", attendance_rate=90)]
        assert detect_district_gap(recs) == []


class TestHighRiskSchools:

    def test_share_of_at_risk_students(self, record_factory):
        recs = [record_factory(school_name="X", attendance_rate=r) for r in (50, 50, 90)]
        recs += [record_factory(school_name="Y", attendance_rate=90) for _ in range(3)]
        [found] = detect_high_risk_schools(recs)
        assert found.id == "high-risk-X"
        assert found.affected == "X"
        assert found.students_impacted == 2

    def test_below_share_not_flagged(self, record_factory):
        recs = [record_factory(school_name="X", attendance_rate=r) for r in (50, 90, 90)]
        assert detect_high_risk_schools(recs) == []


class TestCommitmentGap:

    def test_enrolled_but_absent(self, record_factory):
        recs = [record_factory(activity="Chess", enrolled=True, attendance_rate=50) for _ in range(4)]
        recs += [record_factory(activity="Art", enrolled=e, attendance_rate=90) for e in (True, True, False, False)]
        [found] = detect_commitment_gap(recs)
        assert found.id == "commit-gap-Chess"
        assert found.severity == "warning"
        assert found.students_impacted == 4

    def test_empty(self):
        assert detect_commitment_gap([]) == []


class TestUnderperformingActivities:

    def recs(self, record_factory, waitlist=False):
        out = [record_factory(activity="Chess", enrolled=True, attendance_rate=90) for _ in range(4)]
        out += [record_factory(activity="Knit", enrolled=False, attendance_rate=40, waitlist=waitlist) for _ in range(4)]
        return out

    def test_low_enrollment_and_attendance(self, record_factory):
        [found] = detect_underperforming_activities(self.recs(record_factory))
        assert found.id == "weak-activity-Knit"
        assert found.students_impacted == 4

    def test_long_waitlist_suppresses(self, record_factory):
        recs = self.recs(record_factory, waitlist=True)
        assert detect_underperforming_activities(recs, max_waitlist=4) == []


class TestExpansionOpportunities:

    def recs(self, record_factory):
        out = [record_factory(activity="Chess", school_name=s, attendance_rate=60) for s in "ABCD"]
        out.append(record_factory(activity="Robotics", school_name="A", attendance_rate=95))
        return out

    def test_strong_activity_at_few_schools(self, record_factory):
        [found] = detect_expansion_opportunities(self.recs(record_factory))
        assert found.id == "expand-Robotics"
        assert found.severity == "opportunity"
        assert found.affected == "1 school currently"
        assert found.students_impacted == 3
        assert "Unmet demand" in found.finding

    def test_mentions_weekly_waitlist(self, record_factory, weekly_factory):
        weekly = [weekly_factory(activity="Robotics", waitroom=4)]
        [found] = detect_expansion_opportunities(self.recs(record_factory), weekly)
        assert "4 students are already waitlisted." in found.finding


class TestIndependentPlateau:

    def test_independent_schools_trail(self, record_factory):
        recs = [record_factory(district="", school_name="Solo", attendance_rate=50) for _ in range(3)]
        recs.append(record_factory(district="North", attendance_rate=70))
        [found] = detect_independent_school_plateau(recs)
        assert found.id == "independent-plateau"
        assert found.students_impacted == 3
        assert found.affected == "1 independent school"

    def test_small_gap_ignored(self, record_factory):
        recs = [record_factory(district="", attendance_rate=68), record_factory(district="North", attendance_rate=70)]
        assert detect_independent_school_plateau(recs) == []

    def test_needs_both_groups(self, record_factory):
        assert detect_independent_school_plateau([record_factory(district="", attendance_rate=10)]) == []


# =============================================================================
# WEEKLY DETECTORS
# =============================================================================

class TestOpenSlots:

    def test_waitlist_with_open_seats(self, weekly_factory):
        recs = [weekly_factory(school="A", capacity=20, enrolled=15, waitroom=3),
                weekly_factory(school="B", capacity=20, enrolled=20, waitroom=9),
                weekly_factory(school="C", capacity=20, enrolled=10, waitroom=0)]
        [found] = detect_open_slots_with_waitlist(recs)
        assert found.id == "open-slots-A-Chess"
        assert found.students_impacted == 3
        assert found.affected == "A · Chess"


class TestWeek2Drops:

    def test_drop_flagged(self, weekly_factory):
        recs = [weekly_factory(school="A", att=(80, 60), enrolled=12),
                weekly_factory(school="B", att=(80, 70)),
                weekly_factory(school="C", att=(80, 5)),
                weekly_factory(school="D", att=(80,))]
        [found] = detect_week2_drops(recs)
        assert found.id == "week2-drop-A-Chess"
        assert found.students_impacted == 12
        assert "-20pp" in found.finding


class TestOversubscribed:

    def test_full_at_two_schools(self, weekly_factory):
        recs = [weekly_factory(school="S1", capacity=20, enrolled=20, waitroom=5),
                weekly_factory(school="S2", capacity=15, enrolled=15, waitroom=3)]
        [found] = detect_oversubscribed_activities(recs)
        assert found.id == "oversubscribed-Chess"
        assert found.students_impacted == 8
        assert found.affected == "S1, S2"

    def test_waitlist_too_short(self, weekly_factory):
        recs = [weekly_factory(school="S1", capacity=20, enrolled=20, waitroom=5),
                weekly_factory(school="S2", capacity=15, enrolled=15, waitroom=2)]
        assert detect_oversubscribed_activities(recs) == []

    def test_one_full_school_is_not_enough(self, weekly_factory):
        recs = [weekly_factory(school="S1", capacity=20, enrolled=20, waitroom=9),
                weekly_factory(school="S2", capacity=15, enrolled=10, waitroom=3)]
        assert detect_oversubscribed_activities(recs) == []


# =============================================================================
# ENGINE
# =============================================================================

class TestEngine:

    @pytest.fixture
    def data(self, record_factory, weekly_factory):
        ones = [record_factory(school_name="Solo", district="", attendance_rate=30) for _ in range(2)]
        dists = [record_factory(district="Alpha", school_name="A1", attendance_rate=40),
                 record_factory(district="Beta", school_name="B1", attendance_rate=90)]
        weekly = [weekly_factory(school="A1", capacity=20, enrolled=15, waitroom=3)]
        return ones, dists, weekly

    def test_sorted_by_severity_then_impact(self, data):
        out = generate_insights(*data)
        assert out[0].id == "open-slots-A1-Chess"
        assert out[1].id == "high-risk-Solo"
        order = {"critical": 0, "warning": 1, "opportunity": 2}
        ranks = [(order[i.severity], -i.students_impacted) for i in out]
        assert ranks == sorted(ranks)

    def test_expected_findings(self, data):
        ids = {i.id for i in generate_insights(*data)}
        assert ids == {"district-gap", "high-risk-Solo", "high-risk-A1", "open-slots-A1-Chess", "independent-plateau"}

    def test_gap_uses_district_records_only(self, data):
        ones, dists, weekly = data
        [gap] = [i for i in generate_insights(ones, dists, weekly) if i.id == "district-gap"]
        assert gap.affected == "Alpha"

    def test_removing_a_detector_leaves_others_unchanged(self, data):
        full = generate_insights(*data)
        reduced = generate_insights(*data, detectors=[d for d in DETECTORS if d[0] != "high-risk-schools"])
        assert reduced == [i for i in full if not i.id.startswith("high-risk-")]

    def test_detector_order_does_not_change_findings(self, data):
        a = generate_insights(*data)
        b = generate_insights(*data, detectors=tuple(reversed(DETECTORS)))
        assert sorted(a, key=lambda i: i.id) == sorted(b, key=lambda i: i.id)

    def test_empty_inputs(self):
        assert generate_insights([], []) == []

    def test_sort_insights(self):
        items = [item("o", "opportunity", 50), item("w", "warning", 1), item("c1", "critical", 2),
                 item("c2", "critical", 9)]
        assert [i.id for i in sort_insights(items)] == ["c2", "c1", "w", "o"]
