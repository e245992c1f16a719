"""JSON-over-HTTP clients for the classroom roster and attendance services."""

from typing import Any, Dict, List, Optional

import requests

from app.models import Assignment, AttendanceRecord, ClassroomStudent, Submission
from app.parsers import (
    parse_attendance_payload,
    parse_classroom_roster,
    parse_coursework,
    parse_submissions,
)


class UpstreamError(Exception):
    """An upstream service was unreachable or returned an unusable response."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message
        self.status_code = status_code


def _get_json(
    session: requests.Session,
    service: str,
    url: str,
    timeout: float,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Any:
    try:
        response = session.get(url, params=params, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        print(f"ERROR: {service} request to {url} failed: {e}")
        raise UpstreamError(service, f"request failed: {e}") from e

    if response.status_code != 200:
        print(f"ERROR: {service} returned {response.status_code} for {url}")
        raise UpstreamError(
            service, f"returned {response.status_code}", status_code=response.status_code
        )

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamError(service, "response is not valid JSON") from e


class ClassroomClient:
    """
    Client for the classroom roster service.

    Endpoints (relative to base_url):
        GET /courses/{course_id}/students
        GET /courses/{course_id}/courseWork?courseWorkStates=PUBLISHED
        GET /courses/{course_id}/courseWork/{id}/studentSubmissions
    """

    service = 'classroom'

    def __init__(
        self,
        base_url: str,
        course_id: str,
        token: str = '',
        timeout: float = 15.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.course_id = course_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {'Authorization': f"Bearer {token}"} if token else {}

    def close(self) -> None:
        self.session.close()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return _get_json(
            self.session, self.service, f"{self.base_url}{path}", self.timeout,
            params=params, headers=self.headers,
        )

    def _parse(self, parse, payload):
        try:
            return parse(payload)
        except ValueError as e:
            print(f"ERROR: {self.service} returned an unusable payload: {e}")
            raise UpstreamError(self.service, str(e)) from e

    def list_students(self) -> List[ClassroomStudent]:
        payload = self._get(f"/courses/{self.course_id}/students", params={'pageSize': 100})
        return self._parse(parse_classroom_roster, payload)

    def list_coursework(self) -> List[Assignment]:
        payload = self._get(
            f"/courses/{self.course_id}/courseWork",
            params={'courseWorkStates': 'PUBLISHED'},
        )
        return self._parse(parse_coursework, payload)

    def list_submissions(self, course_work_id: str) -> List[Submission]:
        payload = self._get(
            f"/courses/{self.course_id}/courseWork/{course_work_id}/studentSubmissions"
        )
        return self._parse(parse_submissions, payload)


class AttendanceClient:
    """Client for the spreadsheet-backed attendance webhook."""

    service = 'attendance'

    def __init__(
        self,
        url: str,
        api_key: str = '',
        timeout: float = 15.0,
        session: Optional[requests.Session] = None
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def fetch_records(self) -> List[AttendanceRecord]:
        params = {'apiKey': self.api_key} if self.api_key else None
        payload = _get_json(self.session, self.service, self.url, self.timeout, params=params)
        try:
            return parse_attendance_payload(payload)
        except ValueError as e:
            raise UpstreamError(self.service, str(e)) from e
