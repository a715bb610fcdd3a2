# =============================================================================
# assessment_core/services/reporting.py
# Tabular views (pandas) over the assembled hospital tree
# =============================================================================
"""
Reporting - tabular views over the assembled hospital tree.

Flattens assessments into a pandas DataFrame so that year selection,
monthly summaries and exports work on the same frame.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import pandas as pd

# =============================================================================
# CALENDAR
# =============================================================================

PERSIAN_MONTHS = [
    "فروردین", "اردیبهشت", "خرداد",
    "تیر", "مرداد", "شهریور",
    "مهر", "آبان", "آذر",
    "دی", "بهمن", "اسفند",
]

DEFAULT_MAX_SCORE = 4  # checklist items are scored 0-4 unless a template says otherwise

ASSESSMENT_COLUMNS = [
    "hospital_id", "hospital", "department_id", "department",
    "staff_id", "staff", "assessment_id", "month", "month_index", "year",
    "items", "score", "max_score", "percentage", "exams",
]


def current_jalali_year(today: Optional[datetime] = None) -> int:
    """
    Solar Hijri year for ``today``.

    The year starts at Nowruz (about March 21), so dates before it belong to
    the previous Jalali year.
    """
    today = today or datetime.now()
    if (today.month, today.day) >= (3, 21):
        return today.year - 621
    return today.year - 622


def available_years(hospitals: Iterable[Dict[str, Any]], today: Optional[datetime] = None) -> List[int]:
    """Current Jalali year plus every year seen in the data, newest first."""
    years = {current_jalali_year(today)}
    for hospital in hospitals:
        for department in hospital.get("departments") or []:
            for staff in department.get("staff") or []:
                for row in (staff.get("assessments") or []) + (staff.get("workLogs") or []):
                    if row.get("year"):
                        years.add(row["year"])
        for needs in hospital.get("needsAssessments") or []:
            if needs.get("year"):
                years.add(needs["year"])
    return sorted(years, reverse=True)


# =============================================================================
# ASSESSMENT FRAME
# =============================================================================

def _score(assessment: Dict[str, Any]):
    items = [
        item
        for category in assessment.get("skillCategories") or []
        for item in category.get("items") or []
    ]
    total = sum(item.get("score") or 0 for item in items)
    return len(items), total


def assessment_frame(hospitals: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """One row per assessment with its score totals and percentage."""
    records = []
    for hospital in hospitals:
        for department in hospital.get("departments") or []:
            for staff in department.get("staff") or []:
                for assessment in staff.get("assessments") or []:
                    item_count, total = _score(assessment)
                    max_score = assessment.get("maxScore") or DEFAULT_MAX_SCORE
                    possible = item_count * max_score
                    month = assessment.get("month")
                    records.append({
                        "hospital_id": hospital.get("id"),
                        "hospital": hospital.get("name"),
                        "department_id": department.get("id"),
                        "department": department.get("name"),
                        "staff_id": staff.get("id"),
                        "staff": staff.get("name"),
                        "assessment_id": assessment.get("id"),
                        "month": month,
                        "month_index": PERSIAN_MONTHS.index(month) + 1 if month in PERSIAN_MONTHS else None,
                        "year": assessment.get("year"),
                        "items": item_count,
                        "score": total,
                        "max_score": max_score,
                        "percentage": round(total / possible * 100, 1) if possible else 0.0,
                        "exams": len(assessment.get("examSubmissions") or []),
                    })

    return pd.DataFrame(records, columns=ASSESSMENT_COLUMNS)


def monthly_summary(frame: pd.DataFrame, year: Optional[int] = None) -> pd.DataFrame:
    """
    Average percentage and assessment count per (year, month), in calendar
    order. ``year`` restricts the summary to one year.
    """
    if year is not None:
        frame = frame[frame["year"] == year]
    if frame.empty:
        return pd.DataFrame(columns=["year", "month", "assessments", "mean_percentage"])

    summary = (
        frame.groupby(["year", "month_index", "month"], dropna=False)
        .agg(assessments=("assessment_id", "count"), mean_percentage=("percentage", "mean"))
        .reset_index()
        .sort_values(["year", "month_index"])
    )
    summary["mean_percentage"] = summary["mean_percentage"].round(1)
    return summary[["year", "month", "assessments", "mean_percentage"]].reset_index(drop=True)


def staff_summary(frame: pd.DataFrame, year: Optional[int] = None) -> pd.DataFrame:
    """Per-staff averages, best first."""
    if year is not None:
        frame = frame[frame["year"] == year]
    if frame.empty:
        return pd.DataFrame(columns=["department", "staff", "assessments", "mean_percentage"])

    summary = (
        frame.groupby(["department", "staff"])
        .agg(assessments=("assessment_id", "count"), mean_percentage=("percentage", "mean"))
        .reset_index()
        .sort_values("mean_percentage", ascending=False)
    )
    summary["mean_percentage"] = summary["mean_percentage"].round(1)
    return summary.reset_index(drop=True)
