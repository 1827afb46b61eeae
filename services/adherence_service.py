"""
Adherence Service
Rolling-window adherence statistics computed from medication dose logs
"""

from typing import Any, Dict, Iterable, List, Optional, Set, Union
from datetime import datetime, date, timedelta
from zoneinfo import ZoneInfo

from config import settings
from schemas import AdherenceAlert, AdherenceStats, MedicationWithLogs, TodaysMedication, local_date


DayLike = Union[date, datetime, None]

LOW_ADHERENCE_THRESHOLD = 80


def as_day(as_of: DayLike, tz: Optional[str] = None) -> date:
    zone = ZoneInfo(tz or settings.TIMEZONE)
    if as_of is None:
        return datetime.now(zone).date()
    if isinstance(as_of, datetime):
        if as_of.tzinfo is not None:
            return as_of.astimezone(zone).date()
        return as_of.date()
    return as_of


def dose_days(medications: Iterable[MedicationWithLogs], tz: Optional[str] = None) -> Set[date]:
    """Every local calendar day on which any medication has a parseable log"""
    days = set()
    for medication in medications:
        for log in medication.medication_logs:
            day = local_date(log.taken_at, tz)
            if day is not None:
                days.add(day)
    return days


def taken_on(medication: MedicationWithLogs, day: date, tz: Optional[str] = None) -> bool:
    """Whether any of the medication's logs falls on the given day"""
    return any(local_date(log.taken_at, tz) == day for log in medication.medication_logs)


def compute_adherence(
    medications: List[MedicationWithLogs],
    as_of: DayLike = None,
    window_days: Optional[int] = None,
    tz: Optional[str] = None
) -> AdherenceStats:
    """
    Adherence over the window of calendar days ending at as_of (inclusive).

    Args:
        medications: Medications with their dose logs
        as_of: Evaluation day; defaults to today in the display timezone
        window_days: Window length, 30 unless configured otherwise
        tz: Display timezone used to bucket aware timestamps

    Returns:
        AdherenceStats; all zero for an empty medication list. Unparseable
        timestamps are ignored.
    """
    if not medications:
        return AdherenceStats()

    window_days = window_days or settings.ADHERENCE_WINDOW_DAYS
    today = as_day(as_of, tz)
    days = dose_days(medications, tz)
    window = [today - timedelta(days=offset) for offset in range(window_days)]

    taken_days = sum(1 for day in window if day in days)

    # Streak requires today; no grace period for a day still in progress
    current_streak = 0
    for day in window:
        if day not in days:
            break
        current_streak += 1

    # Integer round-half-up of taken_days / window_days * 100
    percentage = (taken_days * 200 + window_days) // (2 * window_days)

    return AdherenceStats(
        total_days=window_days,
        taken_days=taken_days,
        adherence_percentage=percentage,
        current_streak=current_streak,
    )


def todays_medications(
    medications: List[MedicationWithLogs],
    as_of: DayLike = None,
    tz: Optional[str] = None
) -> List[TodaysMedication]:
    """Each medication flagged with whether a dose was logged on as_of's day"""
    today = as_day(as_of, tz)
    return [
        TodaysMedication.model_validate(
            {**dict(medication), "taken_today": taken_on(medication, today, tz)}
        )
        for medication in medications
    ]


def adherence_alerts(stats: AdherenceStats) -> List[AdherenceAlert]:
    """Notices raised for a caretaker from the patient's figures"""
    alerts = []
    if stats.adherence_percentage < LOW_ADHERENCE_THRESHOLD:
        alerts.append(AdherenceAlert(
            kind="low_adherence",
            title="Low Adherence",
            message=f"Adherence below {LOW_ADHERENCE_THRESHOLD}%",
        ))
    if stats.current_streak == 0:
        alerts.append(AdherenceAlert(
            kind="missed_today",
            title="Missed Today",
            message="No medications taken today",
        ))
    if stats.adherence_percentage >= LOW_ADHERENCE_THRESHOLD and stats.current_streak > 0:
        alerts.append(AdherenceAlert(
            kind="great_progress",
            title="Great Progress!",
            message="Maintaining good adherence",
        ))
    return alerts


def caretaker_summary(
    medications: List[MedicationWithLogs],
    as_of: DayLike = None,
    tz: Optional[str] = None
) -> Dict[str, Any]:
    """Monitoring figures shown to a caretaker, with today's status per medication"""
    stats = compute_adherence(medications, as_of=as_of, tz=tz)
    return {
        "stats": stats,
        "missed_days": stats.total_days - stats.taken_days,
        "total_medications": len(medications),
        "todays_medications": todays_medications(medications, as_of=as_of, tz=tz),
        "alerts": adherence_alerts(stats),
    }
