"""Unit tests for the classroom performance report."""

import pytest

from app.attendance import reconcile
from app.models import Assignment, AttendanceRecord, ClassroomStudent, SessionEntry, Submission
from app.performance import build_performance_report, submission_stats


@pytest.fixture
def reconciliation():
    roster = [
        ClassroomStudent(user_id='U1', full_name='Meera Nair'),
        ClassroomStudent(user_id='U2', full_name='Ravi Shankar'),
    ]
    records = [
        AttendanceRecord(name="Meera Nair", s_no=1, attendance_percentage=90, sessions=[
            SessionEntry(session_name="S1", status="Present", points=10),
            SessionEntry(session_name="S2", status="Present", points=10),
        ]),
        AttendanceRecord(name="Ravi Shankar", s_no=2, attendance_percentage=20, sessions=[
            SessionEntry(session_name="S1", status="Absent", points=0),
            SessionEntry(session_name="S2", status="Absent", points=0),
        ]),
        AttendanceRecord(name="Zara Q", s_no=3, attendance_percentage=100, sessions=[
            SessionEntry(session_name="S1", status="Present", points=10),
        ]),
    ]
    return reconcile(roster, records)


@pytest.fixture
def assignments():
    return [
        Assignment(id='A1', title='Essay', state='PUBLISHED', max_points=100),
        Assignment(id='A2', title='Quiz', state='PUBLISHED', max_points=100),
    ]


@pytest.fixture
def submissions():
    return [
        Submission(user_id='U1', course_work_id='A1', state='TURNED_IN', assigned_grade=80),
        Submission(user_id='U1', course_work_id='A2', state='RETURNED', assigned_grade=80),
        Submission(user_id='U2', course_work_id='A1', state='CREATED'),
    ]


def test_submission_stats(submissions):
    stats = submission_stats(submissions)
    assert int(stats.loc['U1', 'completed']) == 2
    assert int(stats.loc['U1', 'graded']) == 2
    assert float(stats.loc['U1', 'grade_sum']) == 160.0
    assert int(stats.loc['U2', 'completed']) == 0
    assert int(stats.loc['U2', 'graded']) == 0


def test_submission_stats_empty():
    stats = submission_stats([])
    assert len(stats) == 0
    assert 'U1' not in stats.index


def test_student_performance(reconciliation, assignments, submissions):
    report = build_performance_report(reconciliation, assignments, submissions)
    rows = {r.student_id: r for r in report.student_performance}

    # Only classroom students are reported
    assert set(rows) == {'U1', 'U2'}

    meera = rows['U1']
    assert meera.classroom_average_grade == 80
    assert meera.completion == 100
    assert meera.points == 20
    # 0.6 * 80 + 0.4 * (20 / 10) = 48.8
    assert meera.grade == 49
    assert meera.risk_level == 'medium'

    ravi = rows['U2']
    assert ravi.grade == 0
    assert ravi.completion == 0
    assert ravi.attendance_rate == 20
    assert ravi.risk_level == 'high'


def test_class_rollup(reconciliation, assignments, submissions):
    metrics = build_performance_report(reconciliation, assignments, submissions).class_metrics

    assert metrics.average_grade == 25
    assert metrics.total_points == 20
    assert metrics.average_points_earned == 10
    # Zara has one valid session, the others two: mean of 20, 20 and 10
    assert metrics.total_points_possible == 17
    assert metrics.students_at_risk == 1
    assert [p.name for p in metrics.top_performers] == ['Meera Nair', 'Ravi Shankar']

    assert len(metrics.needs_attention) == 1
    flagged = metrics.needs_attention[0]
    assert flagged.name == 'Ravi Shankar'
    assert flagged.issues == ['Low overall performance', 'Missing assignments', 'Poor attendance']


def test_student_without_attendance_uses_classroom_grade(assignments):
    roster = [ClassroomStudent(user_id='U1', full_name='Meera Nair')]
    submissions = [
        Submission(user_id='U1', course_work_id='A1', state='TURNED_IN', assigned_grade=70),
        Submission(user_id='U1', course_work_id='A2', state='TURNED_IN', assigned_grade=90, late=True),
    ]
    report = build_performance_report(reconcile(roster, []), assignments, submissions)

    row = report.student_performance[0]
    assert row.grade == 80
    assert row.points == 0
    assert row.late_submissions == 1
    assert row.attendance_rate == 0
    # No attendance at all
    assert row.risk_level == 'high'
    assert report.class_metrics.total_points_possible == 100


def test_no_assignments(reconciliation):
    report = build_performance_report(reconciliation, [], [])
    for row in report.student_performance:
        assert row.completion == 0
        assert row.total_assignments == 0
