"""Classroom performance report: coursework completion blended with attendance."""

from typing import List

import pandas as pd

from app.attendance import Reconciliation
from app.models import (
    Assignment,
    PerformanceAttention,
    PerformanceClassMetrics,
    PerformanceReport,
    StudentPerformance,
    Submission,
    TopPerformer,
)
from app.risk import (
    DEFAULT_MAX_POINTS_PER_SESSION,
    combined_grade,
    performance_issues,
    performance_risk_level,
    round_half_up,
)


COMPLETED_STATES = ('TURNED_IN', 'RETURNED')
TOP_PERFORMER_LIMIT = 5


def submission_stats(submissions: List[Submission]) -> pd.DataFrame:
    """
    Aggregate submissions per student.

    Returns:
        DataFrame indexed by user_id with columns completed, graded,
        grade_sum and late
    """
    columns = ['completed', 'graded', 'grade_sum', 'late']
    if not submissions:
        return pd.DataFrame(columns=columns, dtype=float)

    df = pd.DataFrame([
        {
            'user_id': s.user_id,
            'completed': s.state in COMPLETED_STATES,
            'graded': s.assigned_grade is not None,
            'grade': s.assigned_grade if s.assigned_grade is not None else 0.0,
            'late': bool(s.late),
        }
        for s in submissions
    ])
    grouped = df.groupby('user_id').agg(
        completed=('completed', 'sum'),
        graded=('graded', 'sum'),
        grade_sum=('grade', 'sum'),
        late=('late', 'sum'),
    )
    return grouped[columns]


def build_student_performance(
    reconciliation: Reconciliation,
    assignments: List[Assignment],
    submissions: List[Submission]
) -> List[StudentPerformance]:
    stats = submission_stats(submissions)
    total_assignments = len(assignments)
    students = reconciliation.index.students if reconciliation.index is not None else []

    rows = []
    for student in students:
        if student.user_id in stats.index:
            row = stats.loc[student.user_id]
            completed = int(row['completed'])
            graded = int(row['graded'])
            grade_sum = float(row['grade_sum'])
            late = int(row['late'])
        else:
            completed = graded = late = 0
            grade_sum = 0.0

        classroom_average = round_half_up(grade_sum / graded) if graded > 0 else 0
        completion = round_half_up(completed / total_assignments * 100.0) if total_assignments > 0 else 0

        group = reconciliation.group_for(student.user_id)
        metric = reconciliation.metric_for(student.user_id)
        has_attendance = group is not None and bool(group.records)
        points = metric.total_points if has_attendance and metric is not None else 0.0
        attendance_rate = metric.attendance_rate if has_attendance and metric is not None else 0.0
        trend = metric.trend if has_attendance and metric is not None else 'stable'

        grade = combined_grade(classroom_average, points, has_attendance)

        rows.append(StudentPerformance(
            student_id=student.user_id,
            name=student.full_name,
            email=student.email,
            photo_url=student.photo_url,
            grade=grade,
            points=points,
            completion=completion,
            trend=trend,
            total_assignments=total_assignments,
            completed_assignments=completed,
            classroom_average_grade=classroom_average,
            late_submissions=late,
            attendance_rate=attendance_rate,
            risk_level=performance_risk_level(grade, completion, attendance_rate),
        ))
    return rows


def build_performance_report(
    reconciliation: Reconciliation,
    assignments: List[Assignment],
    submissions: List[Submission],
    max_points_per_session: float = DEFAULT_MAX_POINTS_PER_SESSION
) -> PerformanceReport:
    """
    Build the class performance report.

    Args:
        reconciliation: Reconciled roster/attendance data for the class
        assignments: Published coursework
        submissions: Submissions for that coursework
        max_points_per_session: Assumed maximum points per attendance session

    Returns:
        PerformanceReport with per-student rows and class rollup
    """
    rows = build_student_performance(reconciliation, assignments, submissions)
    count = len(rows)

    total_points = float(sum(r.points for r in rows))
    at_risk = [r for r in rows if r.risk_level == 'high']

    sheet_metrics = [m for m in reconciliation.metrics if m.resolution != 'classroom_only']
    if sheet_metrics:
        total_points_possible = round_half_up(
            sum(m.valid_point_sessions * max_points_per_session for m in sheet_metrics) / len(sheet_metrics)
        )
    else:
        total_points_possible = 100

    top = sorted(rows, key=lambda r: (-r.grade, r.name.lower()))[:TOP_PERFORMER_LIMIT]

    class_metrics = PerformanceClassMetrics(
        average_grade=round_half_up(sum(r.grade for r in rows) / count) if count else 0,
        average_points_earned=round_half_up(total_points / max(count, 1)),
        total_points_possible=total_points_possible,
        students_improving=sum(1 for r in rows if r.trend == 'improving'),
        students_declining=sum(1 for r in rows if r.trend == 'declining'),
        students_at_risk=len(at_risk),
        total_points=total_points,
        top_performers=[TopPerformer(name=r.name, grade=r.grade, points=r.points) for r in top],
        needs_attention=[
            PerformanceAttention(
                name=r.name,
                grade=r.grade,
                points=r.points,
                issues=performance_issues(
                    r.grade, r.completion, r.late_submissions, r.attendance_rate, r.trend
                ),
            )
            for r in at_risk
        ],
    )
    print(
        f"Performance: {count} students, {class_metrics.students_at_risk} at risk, "
        f"{class_metrics.students_improving} improving, {class_metrics.students_declining} declining"
    )
    return PerformanceReport(class_metrics=class_metrics, student_performance=rows)
