"""Attendance reconciliation pipeline and class-level rollups.

normalize names -> build roster index -> match -> deduplicate ->
flag invalid sessions -> per-student metrics -> class metrics
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import pandas as pd

from app.matching import AttendanceGroup, RosterIndex, reconcile_rosters
from app.models import (
    AttendanceRecord,
    AttendanceReport,
    AttentionStudent,
    ClassMetrics,
    ClassroomStudent,
    EngagedStudent,
    SessionResult,
    StudentMetric,
)
from app.risk import (
    DEFAULT_MAX_POINTS_PER_SESSION,
    attendance_issues,
    attendance_risk_level,
    engagement_score,
    points_efficiency,
    points_trend,
    punctuality_rate,
    round_half_up,
)
from app.sessions import (
    ABSENT,
    LATE,
    PRESENT,
    distinct_session_names,
    find_invalid_sessions,
    normalize_status,
    split_sessions,
)


RECENT_SESSION_WINDOW = 7
MOST_ENGAGED_LIMIT = 5


@dataclass
class Reconciliation:
    """Everything derived from one classroom roster / attendance sheet pair."""
    groups: List[AttendanceGroup]
    metrics: List[StudentMetric]
    invalid_sessions: Set[str] = field(default_factory=set)
    session_names: List[str] = field(default_factory=list)
    index: Optional[RosterIndex] = None

    def metric_for(self, student_id: str) -> Optional[StudentMetric]:
        for metric in self.metrics:
            if metric.student_id == student_id:
                return metric
        return None

    def group_for(self, student_id: str) -> Optional[AttendanceGroup]:
        for group in self.groups:
            if group.student_id == student_id:
                return group
        return None


def build_student_metric(
    group: AttendanceGroup,
    invalid_sessions: Set[str],
    max_points_per_session: float = DEFAULT_MAX_POINTS_PER_SESSION
) -> StudentMetric:
    """
    Compute the derived metrics for one merged student.

    Attendance counts use every countable session; points, efficiency and
    trend only use sessions that are not invalid for points.
    """
    record = group.merged_record()
    classroom = group.classroom_student

    if record is not None:
        attendance_sessions, point_sessions = split_sessions(record, invalid_sessions)
        attendance_rate = float(record.attendance_percentage or 0.0)
    else:
        attendance_sessions, point_sessions = [], []
        attendance_rate = 0.0

    statuses = [normalize_status(entry.status) for entry in attendance_sessions]
    present = statuses.count(PRESENT)
    late = statuses.count(LATE)
    absent = statuses.count(ABSENT)
    total_sessions = len(attendance_sessions)

    point_values = [entry.points or 0.0 for entry in point_sessions]
    total_points = float(sum(point_values))

    punctuality = punctuality_rate(present, late, total_sessions)
    efficiency = points_efficiency(total_points, len(point_sessions), max_points_per_session)
    engagement = engagement_score(attendance_rate, efficiency)

    recent = statuses[-RECENT_SESSION_WINDOW:]

    return StudentMetric(
        student_id=group.student_id,
        name=classroom.full_name if classroom is not None else (record.name if record else group.name),
        email=classroom.email if classroom is not None else None,
        photo_url=classroom.photo_url if classroom is not None else None,
        classroom_status=group.classroom_status,
        resolution=group.resolution,
        match_strategy=group.match_strategy,
        source_names=group.source_names,
        s_no=record.s_no if record is not None else None,
        attendance_rate=attendance_rate,
        punctuality_rate=punctuality,
        points_efficiency=efficiency,
        engagement_score=engagement,
        total_sessions=total_sessions,
        present_sessions=present,
        late_sessions=late,
        absent_sessions=absent,
        valid_point_sessions=len(point_sessions),
        total_points=total_points,
        recent_activity=recent.count(PRESENT),
        risk_level=attendance_risk_level(attendance_rate, engagement),
        trend=points_trend(point_values),
        sessions=[
            SessionResult(
                name=entry.session_name,
                status=status,
                points=entry.points or 0.0,
                counts_for_points=entry.session_name not in invalid_sessions,
            )
            for entry, status in zip(attendance_sessions, statuses)
        ],
    )


def reconcile(
    classroom_students: List[ClassroomStudent],
    attendance_records: List[AttendanceRecord],
    max_points_per_session: float = DEFAULT_MAX_POINTS_PER_SESSION,
    include_unmatched_classroom: bool = True
) -> Reconciliation:
    """
    Run the full reconciliation for one request.

    Args:
        classroom_students: Classroom roster
        attendance_records: Attendance sheet rows
        max_points_per_session: Assumed maximum points per session
        include_unmatched_classroom: Emit roster students without attendance rows

    Returns:
        Reconciliation with groups and per-student metrics
    """
    index = RosterIndex(classroom_students)
    groups = reconcile_rosters(
        classroom_students,
        attendance_records,
        include_unmatched_classroom=include_unmatched_classroom,
        index=index,
    )
    merged_records = [g.merged_record() for g in groups if g.records]
    invalid_sessions = find_invalid_sessions(merged_records)
    metrics = [
        build_student_metric(group, invalid_sessions, max_points_per_session)
        for group in groups
    ]
    return Reconciliation(
        groups=groups,
        metrics=metrics,
        invalid_sessions=invalid_sessions,
        session_names=distinct_session_names(merged_records),
        index=index,
    )


def compute_class_metrics(
    metrics: List[StudentMetric],
    session_names: List[str],
    invalid_sessions: Set[str]
) -> ClassMetrics:
    """Simple means and counts over the per-student metrics."""
    if not metrics:
        return ClassMetrics(
            total_students=0,
            average_attendance_rate=0,
            average_punctuality_rate=0,
            average_engagement_score=0,
            students_at_risk=0,
            students_needing_support=0,
            total_sessions=len(session_names),
            invalid_sessions=sorted(invalid_sessions),
            total_points=0.0,
            average_points=0,
            matched_students=0,
            unmatched_students=0,
        )

    df = pd.DataFrame([
        {
            'attendance_rate': m.attendance_rate,
            'punctuality_rate': m.punctuality_rate,
            'engagement_score': m.engagement_score,
            'total_points': m.total_points,
            'risk_level': m.risk_level,
            'resolution': m.resolution,
        }
        for m in metrics
    ])
    risk_counts = df['risk_level'].value_counts().to_dict()
    resolution_counts = df['resolution'].value_counts().to_dict()
    total_points = float(df['total_points'].sum())

    return ClassMetrics(
        total_students=len(df),
        average_attendance_rate=round_half_up(df['attendance_rate'].mean()),
        average_punctuality_rate=round_half_up(df['punctuality_rate'].mean()),
        average_engagement_score=round_half_up(df['engagement_score'].mean()),
        students_at_risk=int(risk_counts.get('high', 0)),
        students_needing_support=int(risk_counts.get('medium', 0)),
        total_sessions=len(session_names),
        invalid_sessions=sorted(invalid_sessions),
        total_points=total_points,
        average_points=round_half_up(total_points / len(df)),
        matched_students=int(resolution_counts.get('matched', 0)),
        unmatched_students=int(resolution_counts.get('sheet_only', 0)),
    )


def most_engaged(metrics: List[StudentMetric], limit: int = MOST_ENGAGED_LIMIT) -> List[EngagedStudent]:
    ranked = sorted(metrics, key=lambda m: (-m.engagement_score, m.name.lower(), m.student_id))
    return [
        EngagedStudent(
            student_id=m.student_id,
            name=m.name,
            engagement_score=m.engagement_score,
            attendance_rate=m.attendance_rate,
            total_points=m.total_points,
            photo_url=m.photo_url,
            email=m.email,
        )
        for m in ranked[:limit]
    ]


def needs_attention(metrics: List[StudentMetric]) -> List[AttentionStudent]:
    return [
        AttentionStudent(
            student_id=m.student_id,
            name=m.name,
            attendance_rate=m.attendance_rate,
            engagement_score=m.engagement_score,
            absent_sessions=m.absent_sessions,
            photo_url=m.photo_url,
            email=m.email,
            issues=attendance_issues(
                m.attendance_rate, m.late_sessions, m.engagement_score, m.points_efficiency
            ),
        )
        for m in metrics
        if m.risk_level == 'high'
    ]


def build_attendance_report(reconciliation: Reconciliation) -> AttendanceReport:
    metrics = reconciliation.metrics
    class_metrics = compute_class_metrics(
        metrics, reconciliation.session_names, reconciliation.invalid_sessions
    )
    print(
        f"Results: {class_metrics.total_students} students ("
        f"{class_metrics.students_at_risk} high risk, "
        f"{class_metrics.students_needing_support} medium risk, "
        f"{class_metrics.unmatched_students} not joined)"
    )
    return AttendanceReport(
        class_metrics=class_metrics,
        student_metrics=metrics,
        most_engaged=most_engaged(metrics),
        needs_attention=needs_attention(metrics),
    )


def summarize(report: AttendanceReport) -> Dict[str, int]:
    """Risk and resolution counts used by the upload response."""
    summary = {'High Risk': 0, 'Medium Risk': 0, 'Low Risk': 0}
    for metric in report.student_metrics:
        summary[f"{metric.risk_level.capitalize()} Risk"] += 1
    summary['Matched'] = report.class_metrics.matched_students
    summary['Not Joined'] = report.class_metrics.unmatched_students
    summary['Total'] = report.class_metrics.total_students
    return summary
