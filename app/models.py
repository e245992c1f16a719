"""Data models for the Classroom Attendance Monitor application."""

from typing import Optional, Dict, List
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClassroomStudent(CamelModel):
    """Enrolled student as reported by the classroom roster service."""
    user_id: str
    full_name: str
    email: Optional[str] = None
    photo_url: Optional[str] = None


class SessionEntry(CamelModel):
    """One session column of an attendance sheet row."""
    session_name: Optional[str] = None
    status: Optional[str] = None
    points: float = 0.0

    @field_validator('points', mode='before')
    @classmethod
    def _coerce_points(cls, value):
        if value is None or value == '':
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0


class AttendanceRecord(CamelModel):
    """Attendance sheet row, keyed only by a free-text name."""
    name: str
    s_no: Optional[int] = None
    attendance_percentage: float = 0.0
    sessions: List[SessionEntry] = []

    @field_validator('attendance_percentage', mode='before')
    @classmethod
    def _coerce_percentage(cls, value):
        # The webhook may send "85%"; it is already on the 0-100 scale
        if isinstance(value, str):
            value = value.strip().rstrip('%').strip()
        if value is None or value == '':
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @field_validator('s_no', mode='before')
    @classmethod
    def _coerce_s_no(cls, value):
        if value is None or value == '':
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


class Assignment(CamelModel):
    """Published coursework item."""
    id: str
    title: Optional[str] = None
    state: Optional[str] = None
    max_points: Optional[float] = None


class Submission(CamelModel):
    """Student submission for a coursework item."""
    user_id: str
    course_work_id: Optional[str] = None
    state: Optional[str] = None
    assigned_grade: Optional[float] = None
    late: bool = False


class SessionResult(CamelModel):
    """Session as it appears on a merged student record."""
    name: str
    status: str
    points: float
    counts_for_points: bool


class StudentMetric(CamelModel):
    """Merged per-student record with derived attendance metrics."""
    student_id: str
    name: str
    email: Optional[str] = None
    photo_url: Optional[str] = None
    classroom_status: str
    resolution: str
    match_strategy: Optional[str] = None
    source_names: List[str] = []
    s_no: Optional[int] = None
    attendance_rate: float
    punctuality_rate: int
    points_efficiency: int
    engagement_score: int
    total_sessions: int
    present_sessions: int
    late_sessions: int
    absent_sessions: int
    valid_point_sessions: int
    total_points: float
    recent_activity: int
    risk_level: str
    trend: str
    sessions: List[SessionResult] = []


class ClassMetrics(CamelModel):
    """Class-level rollup of student attendance metrics."""
    total_students: int
    average_attendance_rate: int
    average_punctuality_rate: int
    average_engagement_score: int
    students_at_risk: int
    students_needing_support: int
    total_sessions: int
    invalid_sessions: List[str]
    total_points: float
    average_points: int
    matched_students: int
    unmatched_students: int


class EngagedStudent(CamelModel):
    student_id: str
    name: str
    engagement_score: int
    attendance_rate: float
    total_points: float
    photo_url: Optional[str] = None
    email: Optional[str] = None


class AttentionStudent(CamelModel):
    student_id: str
    name: str
    attendance_rate: float
    engagement_score: int
    absent_sessions: int
    photo_url: Optional[str] = None
    email: Optional[str] = None
    issues: List[str]


class AttendanceReport(CamelModel):
    """Response of the attendance endpoint."""
    class_metrics: ClassMetrics
    student_metrics: List[StudentMetric]
    most_engaged: List[EngagedStudent]
    needs_attention: List[AttentionStudent]


class StudentPerformance(CamelModel):
    """Per-student classroom performance row."""
    student_id: str
    name: str
    email: Optional[str] = None
    photo_url: Optional[str] = None
    grade: int
    points: float
    completion: int
    trend: str
    total_assignments: int
    completed_assignments: int
    classroom_average_grade: int
    late_submissions: int
    attendance_rate: float
    risk_level: str


class TopPerformer(CamelModel):
    name: str
    grade: int
    points: float


class PerformanceAttention(CamelModel):
    name: str
    grade: int
    points: float
    issues: List[str]


class PerformanceClassMetrics(CamelModel):
    average_grade: int
    average_points_earned: int
    total_points_possible: int
    students_improving: int
    students_declining: int
    students_at_risk: int
    total_points: float
    top_performers: List[TopPerformer]
    needs_attention: List[PerformanceAttention]


class PerformanceReport(CamelModel):
    """Response of the performance metrics endpoint."""
    class_metrics: PerformanceClassMetrics
    student_performance: List[StudentPerformance]


class StudentLookupResponse(CamelModel):
    """Classroom student with their reconciled attendance metric, if any."""
    student: ClassroomStudent
    attendance: Optional[StudentMetric] = None


class CacheStats(CamelModel):
    hits: int
    misses: int
    sets: int
    evictions: int
    hit_rate: float
    total_requests: int
    cache_size: int
    max_size: int


class UploadResponse(CamelModel):
    """Response from attendance upload endpoint."""
    success: bool
    message: str
    report: AttendanceReport
    summary: Dict[str, int]
