"""Session hygiene and validity filtering for attendance data."""

from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.models import AttendanceRecord, SessionEntry


PRESENT = 'Present'
LATE = 'Late'
ABSENT = 'Absent'

STATUS_ALIASES = {
    'present': PRESENT,
    'late': LATE,
    'absent': ABSENT,
}

# Spreadsheet columns that were never given a header come through as "Column N"
PLACEHOLDER_SESSION_PREFIX = 'Column'


def normalize_status(status: Optional[str]) -> Optional[str]:
    """
    Normalize a raw status cell to Present / Late / Absent.

    The sheet emits values such as "Absent " or "present"; anything that is
    not one of the three statuses is returned stripped but otherwise as-is.
    """
    if status is None:
        return None
    cleaned = str(status).strip()
    if not cleaned:
        return None
    return STATUS_ALIASES.get(cleaned.lower(), cleaned)


def is_countable_session(entry: SessionEntry) -> bool:
    """A session counts when it has a real name and a recorded status."""
    if not entry.session_name or not entry.session_name.strip():
        return False
    if entry.session_name.startswith(PLACEHOLDER_SESSION_PREFIX):
        return False
    return normalize_status(entry.status) is not None


def countable_sessions(record: AttendanceRecord) -> List[SessionEntry]:
    return [entry for entry in record.sessions if is_countable_session(entry)]


def find_invalid_sessions(records: Iterable[AttendanceRecord]) -> Set[str]:
    """
    Find sessions whose points were never populated.

    A session is invalid for points when every student recorded zero (or no)
    points for it. Such sessions still count towards attendance.

    Args:
        records: Attendance rows of the whole class

    Returns:
        Set of invalid session names
    """
    points_by_session: Dict[str, List[float]] = {}
    for record in records:
        for entry in countable_sessions(record):
            points_by_session.setdefault(entry.session_name, []).append(entry.points or 0.0)

    invalid = {
        name for name, points in points_by_session.items()
        if not any(p > 0 for p in points)
    }
    for name in sorted(invalid):
        print(f"DEBUG: Excluding session '{name}' from points - all students have 0 points")
    if points_by_session:
        print(f"DEBUG: Sessions found: {len(points_by_session)}, invalid for points: {len(invalid)}")
    return invalid


def split_sessions(
    record: AttendanceRecord,
    invalid_sessions: Set[str]
) -> Tuple[List[SessionEntry], List[SessionEntry]]:
    """
    Split a student's sessions into the two tracks used by the metrics.

    Returns:
        Tuple of (attendance_sessions, point_sessions). Attendance sessions are
        all countable sessions; point sessions exclude invalid ones.
    """
    attendance_sessions = countable_sessions(record)
    point_sessions = [
        entry for entry in attendance_sessions
        if entry.session_name not in invalid_sessions
    ]
    return attendance_sessions, point_sessions


def distinct_session_names(records: Iterable[AttendanceRecord]) -> List[str]:
    names: List[str] = []
    seen: Set[str] = set()
    for record in records:
        for entry in countable_sessions(record):
            if entry.session_name not in seen:
                seen.add(entry.session_name)
                names.append(entry.session_name)
    return names
