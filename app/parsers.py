"""Upstream payload parsing and attendance workbook loading."""

import pandas as pd
import numpy as np
import re
from typing import Any, Dict, List, Optional, Tuple
from io import BytesIO

from pydantic import ValidationError

from app.models import (
    Assignment,
    AttendanceRecord,
    ClassroomStudent,
    SessionEntry,
    Submission,
)


SNO_VARIATIONS = ["sno", "s no", "s_no", "serial", "serial no", "sl no", "slno"]
NAME_VARIATIONS = ["name", "student name", "studentname", "student", "full name"]
ATTENDANCE_VARIATIONS = [
    "attendance", "attendance percentage", "attendance pct", "attendancepercentage",
    "attended", "attended to date", "attendance rate"
]
STATUS_SUFFIX = " status"
POINTS_SUFFIX = " points"


def normalize_col_name(col_name) -> str:
    """Normalize a column name for matching (lowercase, no . , % #, single spaces)."""
    if pd.isna(col_name):
        return ""
    normalized = str(col_name).strip().lower()
    normalized = re.sub(r'[.,%#]', '', normalized)
    normalized = re.sub(r'\s+', ' ', normalized)
    return normalized.strip()


def normalize_pct(x) -> float:
    """
    Normalize percentage values.
    Handles both 0-1 decimals (e.g., 0.88) and 0-100 percentages (e.g., 88).

    Args:
        x: Value that might be in 0-1 range or 0-100 range

    Returns:
        Percentage in 0-100 range
    """
    if x is None or pd.isna(x):
        return 0.0

    try:
        if isinstance(x, str):
            val_str = x.strip().replace('%', '').strip()
            if not val_str:
                return 0.0
            # "85%" is already a percentage even though it is written as text
            if '%' in x:
                return float(val_str)
            val = float(val_str)
        else:
            val = float(x)

        if np.isnan(val) or np.isinf(val):
            return 0.0

        if val <= 1.0:
            return val * 100.0
        return val
    except (ValueError, TypeError) as e:
        print(f"DEBUG: normalize_pct error for value '{x}' (type: {type(x)}): {e}")
        return 0.0


def _unwrap_list(payload: Any, key: str) -> List[Any]:
    """Accept either a bare list or an object wrapping the list under ``key``."""
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        value = payload.get(key)
        if value is None:
            return []
        if isinstance(value, list):
            return value
    raise ValueError(f"Expected a list or an object with a '{key}' list")


def parse_classroom_student(item: Dict[str, Any]) -> Optional[ClassroomStudent]:
    """
    Parse one roster entry.

    Accepts the classroom API shape
    ``{"userId", "profile": {"name": {"fullName"}, "emailAddress", "photoUrl"}}``
    as well as the flat ``{"userId", "fullName", "email", "photoUrl"}`` shape.
    """
    profile = item.get('profile') or {}
    name = profile.get('name') or {}

    user_id = item.get('userId') or item.get('id')
    full_name = name.get('fullName') or item.get('fullName') or item.get('name')
    if not user_id or not full_name or not str(full_name).strip():
        return None

    photo_url = profile.get('photoUrl') or item.get('photoUrl')
    if not isinstance(photo_url, str):
        photo_url = None
    elif photo_url.startswith('//'):
        photo_url = f"https:{photo_url}"

    return ClassroomStudent(
        user_id=str(user_id),
        full_name=str(full_name).strip(),
        email=profile.get('emailAddress') or item.get('email') or item.get('emailAddress'),
        photo_url=photo_url,
    )


def parse_classroom_roster(payload: Any) -> List[ClassroomStudent]:
    """Parse the classroom roster response into ClassroomStudent models."""
    students = []
    skipped = 0
    for item in _unwrap_list(payload, 'students'):
        student = parse_classroom_student(item) if isinstance(item, dict) else None
        if student is None:
            skipped += 1
            continue
        students.append(student)
    if skipped:
        print(f"WARNING: Skipped {skipped} roster entries without an id or full name")
    return students


def parse_attendance_payload(payload: Any) -> List[AttendanceRecord]:
    """
    Parse the attendance webhook response.

    Expected shape::

        {"status": "success",
         "data": [{"name", "s_no", "attendancePercentage",
                   "sessions": [{"sessionName", "status", "points"}]}]}

    Raises:
        ValueError: If the response is not a successful attendance export
    """
    if not isinstance(payload, dict) or payload.get('status') != 'success':
        raise ValueError("Invalid attendance API response")
    data = payload.get('data')
    if not isinstance(data, list):
        raise ValueError("Invalid attendance API response: 'data' is not a list")

    records = []
    for row in data:
        try:
            records.append(AttendanceRecord.model_validate(row))
        except ValidationError as e:
            print(f"WARNING: Skipping malformed attendance row {row!r}: {e.error_count()} errors")
    print(f"DEBUG: Parsed {len(records)} attendance rows")
    return records


def parse_coursework(payload: Any) -> List[Assignment]:
    assignments = []
    for item in _unwrap_list(payload, 'courseWork'):
        if not isinstance(item, dict) or not item.get('id'):
            continue
        assignments.append(Assignment(
            id=str(item['id']),
            title=item.get('title'),
            state=item.get('state'),
            max_points=item.get('maxPoints'),
        ))
    return assignments


def parse_submissions(payload: Any) -> List[Submission]:
    submissions = []
    for item in _unwrap_list(payload, 'studentSubmissions'):
        if not isinstance(item, dict) or not item.get('userId'):
            continue
        submissions.append(Submission(
            user_id=str(item['userId']),
            course_work_id=item.get('courseWorkId'),
            state=item.get('state'),
            assigned_grade=item.get('assignedGrade'),
            late=bool(item.get('late', False)),
        ))
    return submissions


def _match_column(columns: List[Any], variations: List[str]) -> Optional[Any]:
    for col in columns:
        if normalize_col_name(col) in variations:
            return col
    return None


def find_session_columns(columns: List[Any]) -> List[Tuple[str, Optional[Any], Optional[Any]]]:
    """
    Pair up ``<Session> Status`` / ``<Session> Points`` columns.

    Returns:
        List of (session_name, status_column, points_column) in sheet order
    """
    sessions: Dict[str, List[Optional[Any]]] = {}
    for col in columns:
        text = str(col).strip()
        lowered = re.sub(r'\s+', ' ', text.lower())
        if lowered.endswith(STATUS_SUFFIX):
            session_name = text[:-len(STATUS_SUFFIX)].strip()
            sessions.setdefault(session_name, [None, None])[0] = col
        elif lowered.endswith(POINTS_SUFFIX):
            session_name = text[:-len(POINTS_SUFFIX)].strip()
            sessions.setdefault(session_name, [None, None])[1] = col
    return [(name, cols[0], cols[1]) for name, cols in sessions.items()]


def _cell_text(value) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def _cell_points(value) -> float:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return 0.0
    try:
        return float(value)
    except (ValueError, TypeError):
        return 0.0


def attendance_records_from_frame(df: pd.DataFrame) -> List[AttendanceRecord]:
    """
    Convert an attendance export DataFrame into AttendanceRecord models.

    Expected columns: ``S.No``, ``Name``, ``Attendance %`` followed by
    ``<Session> Status`` / ``<Session> Points`` pairs. Total/summary rows and
    rows without a name are dropped.
    """
    columns = list(df.columns)
    name_col = _match_column(columns, NAME_VARIATIONS)
    if name_col is None:
        raise ValueError(f"No student name column found. Columns: {[str(c) for c in columns]}")
    sno_col = _match_column(columns, SNO_VARIATIONS)
    attendance_col = _match_column(columns, ATTENDANCE_VARIATIONS)
    session_columns = find_session_columns(columns)

    if attendance_col is None:
        print("WARNING: No attendance percentage column found, defaulting to 0")
    if not session_columns:
        print(f"WARNING: No session columns found. Columns: {[str(c) for c in columns]}")

    records = []
    for _, row in df.iterrows():
        name = _cell_text(row.get(name_col))
        if not name or re.search(r'\b(total|summary)\b', name, re.IGNORECASE):
            continue

        sessions = [
            SessionEntry(
                session_name=session_name,
                status=_cell_text(row.get(status_col)) if status_col is not None else None,
                points=_cell_points(row.get(points_col)) if points_col is not None else 0.0,
            )
            for session_name, status_col, points_col in session_columns
        ]
        records.append(AttendanceRecord(
            name=name,
            s_no=row.get(sno_col) if sno_col is not None and pd.notna(row.get(sno_col)) else None,
            attendance_percentage=normalize_pct(row.get(attendance_col)) if attendance_col is not None else 0.0,
            sessions=sessions,
        ))

    print(f"DEBUG: Loaded {len(records)} attendance rows with {len(session_columns)} sessions")
    return records


def load_attendance_workbook(file_bytes: bytes) -> List[AttendanceRecord]:
    """
    Load the first worksheet of an attendance export workbook.

    Args:
        file_bytes: Raw bytes of the .xlsx file

    Returns:
        Attendance records in sheet order
    """
    df = pd.read_excel(BytesIO(file_bytes), sheet_name=0, engine='openpyxl')
    df = df.dropna(how='all')
    print(f"DEBUG: Workbook columns: {list(df.columns)}")
    return attendance_records_from_frame(df)
