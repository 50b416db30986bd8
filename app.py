from __future__ import annotations
import hashlib
import logging
from dataclasses import asdict
import streamlit as st
import pandas as pd
from attendance_core.errors import NoValidRowsError, WorkbookReadError
from attendance_core.ingest import load_attendance, load_weekly, load_daily
from attendance_core.attendance import (
    get_1to1_data, get_district_data, get_schools, get_districts, filter_data, filter_by_district,
    get_metrics, get_school_summaries, get_activity_summaries, get_category_summaries,
    get_type_summaries, get_county_summaries, get_district_summaries, get_zero_attendance,
)
from attendance_core.weekly import (
    split_weekly, get_weekly_options, filter_weekly, get_weekly_metrics, get_metric_label, get_metric_value,
    latest_value, build_weekly_chart_data, METRICS,
)
from attendance_core.daily import (
    split_daily, get_daily_options, filter_daily, get_daily_metrics, get_unique_dates,
    get_visible_dates, get_attendance_for_date, get_day_of_week_stats, build_daily_chart_data, DAY_ORDER,
)
from attendance_core.insights import generate_insights

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

ALL = "all"
LOADERS = {"attendance": load_attendance, "weekly": load_weekly, "daily": load_daily}

st.set_page_config(page_title="Attendance Dashboard", layout="wide")
st.title("Attendance Dashboard")
st.caption("Monitor student attendance across schools & activities")
# =========================

# Helpers
# =========================
def _digest(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _frame(items) -> pd.DataFrame:
    return pd.DataFrame([asdict(x) for x in items])


def _select(label: str, options, key: str) -> str:
    return st.selectbox(label, [ALL, *options], key=key, format_func=lambda v: "All" if v == ALL else v)


def _ingest(kind: str, upload) -> None:
    """
    Parses one upload into st.session_state[kind].
    A failed file leaves every loaded data kind as it was.
    """
    if upload is None:
        return
    data = upload.getvalue()
    digest = _digest(data)
    if st.session_state.get(f"{kind}_digest") == digest:
        return
    try:
        records = LOADERS[kind](data, upload.name)
    except NoValidRowsError as e:
        st.error(str(e))
        return
    except WorkbookReadError as e:
        st.error(e.message)
        return
    st.session_state[kind] = records
    st.session_state[f"{kind}_digest"] = digest
    st.success(f"{upload.name}: {len(records)} records loaded.")


def _attendance_metrics(records) -> None:
    m = get_metrics(records)
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Students", m.total_students)
    c2.metric("Enrolled", m.enrolled)
    c3.metric("Avg attendance", f"{m.avg_attendance_rate}%")
    c4.metric("At risk (<60%)", m.at_risk)
    c5.metric("Avg last 5", m.avg_last5)


def _attendance_breakdowns(records) -> None:
    left, right = st.columns(2)
    with left:
        st.subheader("Activities")
        st.dataframe(_frame(get_activity_summaries(records)), hide_index=True)
        st.subheader("Types")
        st.dataframe(_frame(get_type_summaries(records)), hide_index=True)
    with right:
        st.subheader("Categories")
        st.dataframe(_frame(get_category_summaries(records)), hide_index=True)
        st.subheader("Counties")
        st.dataframe(_frame(get_county_summaries(records)), hide_index=True)

    st.subheader("Zero attendance")
    zero = get_zero_attendance(records)
    if zero:
        st.dataframe(_frame(zero), hide_index=True)
    else:
        st.info("No students with zero attendance")
# =========================

# Uploads
# =========================
u1, u2, u3 = st.columns(3)
with u1:
    _ingest("attendance", st.file_uploader("Attendance export", type=["xlsx", "xlsm", "csv"]))
with u2:
    _ingest("weekly", st.file_uploader("Weekly stats", type=["xlsx", "xlsm", "csv"]))
with u3:
    _ingest("daily", st.file_uploader("Daily attendance", type=["xlsx", "xlsm", "csv"]))

attendance = st.session_state.get("attendance", [])
weekly = st.session_state.get("weekly", [])
daily = st.session_state.get("daily", [])

if not (attendance or weekly or daily):
    st.info("Upload a workbook to get started.")
    st.stop()

data_1to1 = get_1to1_data(attendance)
data_districts = get_district_data(attendance)

tab_1to1, tab_districts, tab_weekly, tab_daily, tab_insights = st.tabs(
    ["1to1 Schools", "Districts", "Weekly", "Daily", "Insights"]
)
# =========================

# Attendance views
# =========================
with tab_1to1:
    if not data_1to1:
        st.info("No attendance records without a district.")
    else:
        school = _select("School", get_schools(data_1to1), key="a_school")
        filtered = filter_data(data_1to1, school)
        _attendance_metrics(filtered)
        st.subheader("Schools")
        st.dataframe(_frame(get_school_summaries(filtered)), hide_index=True)
        _attendance_breakdowns(filtered)

with tab_districts:
    if not data_districts:
        st.info("No district attendance records.")
    else:
        district = _select("District", get_districts(data_districts), key="a_district")
        filtered = filter_by_district(data_districts, district)
        _attendance_metrics(filtered)
        st.subheader("District summary")
        st.dataframe(_frame(get_district_summaries(data_districts)), hide_index=True)
        st.subheader("Schools")
        st.dataframe(_frame(get_school_summaries(filtered)), hide_index=True)
        _attendance_breakdowns(filtered)
# =========================

# Weekly
# =========================
with tab_weekly:
    if not weekly:
        st.info("Upload weekly stats to see this view.")
    else:
        w_1to1, w_districts = split_weekly(weekly)
        sub = st.radio("Schools", ["1to1", "Districts"], horizontal=True, key="w_sub",
                       disabled=not w_districts)
        active = w_districts if sub == "Districts" and w_districts else w_1to1
        opts = get_weekly_options(active)

        c1, c2, c3, c4 = st.columns(4)
        with c1:
            w_district = _select("District", opts.districts, key="w_district") if sub == "Districts" else ALL
        with c2:
            w_school = _select("School", opts.schools, key="w_school")
        with c3:
            w_activity = _select("Activity", opts.activities, key="w_activity")
        with c4:
            w_category = _select("Category", opts.categories, key="w_category")

        metric = st.radio("Metric", METRICS, horizontal=True, format_func=get_metric_label, key="w_metric")
        week_from, week_to = 0, max(0, len(opts.week_labels) - 1)
        if len(opts.week_labels) > 1:
            week_from, week_to = st.select_slider(
                "Weeks", options=list(range(len(opts.week_labels))), value=(week_from, week_to),
                format_func=lambda i: opts.week_labels[i], key="w_range",
            )

        filtered = filter_weekly(active, w_district, w_school, w_activity, w_category)
        m = get_weekly_metrics(filtered, week_from, week_to)
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Capacity", m.max_capacity)
        c2.metric("Enrolled", m.total_enrolled, f"{m.enrollment_rate}% of capacity")
        c3.metric("Waitroom", m.waitroom)
        c4.metric("Attended (latest)", m.latest_attended)

        rows = []
        for r in filtered:
            row = {"School": r.school_name, "Activity": r.activity, "Capacity": r.max_capacity,
                   "Enrolled": r.total_enrolled, "Waitroom": r.waitroom,
                   "Latest": latest_value(r, metric, week_from, week_to)}
            for w in r.weeks[week_from:week_to + 1]:
                row[w.week_label] = get_metric_value(w, metric)
            rows.append(row)
        st.dataframe(pd.DataFrame(rows), hide_index=True)

        chart = build_weekly_chart_data(filtered, metric, week_from, week_to)
        if chart:
            st.line_chart(pd.DataFrame(chart).set_index("week"))
# =========================

# Daily
# =========================
with tab_daily:
    if not daily:
        st.info("Upload daily attendance to see this view.")
    else:
        d_1to1, d_districts = split_daily(daily)
        sub = st.radio("Schools", ["1to1", "Districts"], horizontal=True, key="d_sub",
                       disabled=not d_districts)
        active = d_districts if sub == "Districts" and d_districts else d_1to1
        opts = get_daily_options(active)

        c1, c2, c3, c4 = st.columns(4)
        with c1:
            d_school = _select("School", opts.schools, key="d_school")
        with c2:
            d_activity = _select("Activity", opts.activities, key="d_activity")
        with c3:
            d_district = _select("District", opts.districts, key="d_district") if sub == "Districts" else ALL
        with c4:
            d_category = _select("Category", opts.categories, key="d_category")

        filtered = filter_daily(active, d_school, d_activity, d_district, d_category)
        m = get_daily_metrics(filtered)
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Students", m.total_students)
        c2.metric("Overall rate", f"{m.overall_rate}%")
        c3.metric("At risk (<60%)", m.at_risk)
        c4.metric("Present marks", m.total_present)

        visible = get_visible_dates(get_unique_dates(filtered))
        table = [
            {"External ID": r.external_id, "Student": r.student_name, "School": r.school_name,
             "Activity": r.activity, **{d: get_attendance_for_date(r, d) for d in visible}}
            for r in filtered
        ]
        st.dataframe(pd.DataFrame(table), hide_index=True)

        chart = build_daily_chart_data(filtered, visible)
        if chart:
            st.line_chart(pd.DataFrame(chart).set_index("weekLabel"))

        st.subheader("Day of week")
        dow = [
            {"School": row.school, **{d: row.days[d].rate for d in DAY_ORDER}, "Best day": row.best_day}
            for row in get_day_of_week_stats(filtered)
        ]
        st.dataframe(pd.DataFrame(dow), hide_index=True)
# =========================

# Insights
# =========================
with tab_insights:
    items = generate_insights(data_1to1, data_districts, weekly, daily)
    if not items:
        st.info("No findings for the loaded data.")
    else:
        st.dataframe(_frame(items), hide_index=True)
