"""Risk scoring logic: per-student scores, trend and the two risk heuristics."""

import math
from typing import List, Sequence

import numpy as np


DEFAULT_MAX_POINTS_PER_SESSION = 10.0

TREND_WINDOW = 2
TREND_THRESHOLD = 0.5


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def punctuality_rate(present: int, late: int, total_sessions: int) -> int:
    """
    Share of on-time arrivals among the sessions a student attended.

    Args:
        present: Sessions marked Present
        late: Sessions marked Late
        total_sessions: All countable sessions of the student

    Returns:
        Percentage 0-100; 100 when the student has no sessions at all
    """
    if total_sessions <= 0:
        return 100
    attended = present + late
    if attended == 0:
        return 0
    return round_half_up(present / attended * 100.0)


def points_efficiency(
    total_points: float,
    valid_session_count: int,
    max_points_per_session: float = DEFAULT_MAX_POINTS_PER_SESSION
) -> int:
    """
    Earned points as a percentage of the points available in valid sessions.

    Args:
        total_points: Points earned in sessions that count for points
        valid_session_count: Number of sessions that count for points
        max_points_per_session: Assumed maximum per session

    Returns:
        Percentage (rounded); 0 when no session counts for points
    """
    max_possible = valid_session_count * max_points_per_session
    if max_possible <= 0:
        return 0
    return round_half_up(total_points / max_possible * 100.0)


def engagement_score(attendance_rate: float, efficiency: float) -> int:
    """Weighted blend: round(0.6 * attendance + 0.4 * points efficiency)."""
    return round_half_up(0.6 * attendance_rate + 0.4 * efficiency)


def attendance_risk_level(attendance_rate: float, engagement: float) -> str:
    """
    Attendance risk used by the attendance dashboard.

    high if attendance < 60 or engagement < 50; medium if attendance < 80 or
    engagement < 70; otherwise low.

    This is deliberately a different heuristic from performance_risk_level.
    """
    if attendance_rate < 60 or engagement < 50:
        return 'high'
    if attendance_rate < 80 or engagement < 70:
        return 'medium'
    return 'low'


def performance_risk_level(grade: float, completion_rate: float, attendance_rate: float) -> str:
    """
    Class-performance risk used by the performance report.

    high if grade < 30 or completion < 40 or attendance < 50; medium if
    grade < 50 or completion < 60 or attendance < 70; otherwise low.
    """
    if grade < 30 or completion_rate < 40 or attendance_rate < 50:
        return 'high'
    if grade < 50 or completion_rate < 60 or attendance_rate < 70:
        return 'medium'
    return 'low'


def points_trend(points: Sequence[float]) -> str:
    """
    Compare the latest two sessions with the two before them.

    Args:
        points: Points of the sessions that count for points, oldest first

    Returns:
        'improving', 'declining' or 'stable' (fewer than 4 sessions is stable)
    """
    if len(points) < 2 * TREND_WINDOW:
        return 'stable'
    recent = np.mean(points[-TREND_WINDOW:])
    older = np.mean(points[-2 * TREND_WINDOW:-TREND_WINDOW])
    difference = float(recent - older)
    if difference > TREND_THRESHOLD:
        return 'improving'
    if difference < -TREND_THRESHOLD:
        return 'declining'
    return 'stable'


def combined_grade(classroom_average: float, attendance_points: float, has_attendance: bool) -> int:
    """
    Blend the classroom grade with attendance points.

    Attendance points are scaled by 1/10 before weighting:
    round(0.6 * classroom_average + 0.4 * points / 10). Without an attendance
    record the classroom average is used as-is.
    """
    if not has_attendance:
        return round_half_up(classroom_average)
    return round_half_up(classroom_average * 0.6 + (attendance_points / 10.0) * 0.4)


def attendance_issues(
    attendance_rate: float,
    late_sessions: int,
    engagement: float,
    efficiency: float
) -> List[str]:
    issues = []
    if attendance_rate < 60:
        issues.append('Low attendance')
    if late_sessions > 3:
        issues.append('Frequent tardiness')
    if engagement < 50:
        issues.append('Low engagement')
    if efficiency < 40:
        issues.append('Poor performance')
    return issues


def performance_issues(grade: float, completion_rate: float, late_submissions: int,
                       attendance_rate: float, trend: str) -> List[str]:
    issues = []
    if grade < 60:
        issues.append('Low overall performance')
    if completion_rate < 70:
        issues.append('Missing assignments')
    if late_submissions > 2:
        issues.append('Late submissions')
    if attendance_rate < 70:
        issues.append('Poor attendance')
    if trend == 'declining':
        issues.append('Declining performance')
    return issues
