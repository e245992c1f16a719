"""Unit tests for the upstream HTTP clients."""

import pytest
import requests

from app.clients import AttendanceClient, ClassroomClient, UpstreamError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append({'url': url, 'params': params, 'headers': headers, 'timeout': timeout})
        if self.error is not None:
            raise self.error
        return self.response


def test_classroom_list_students():
    session = FakeSession(FakeResponse(payload={'students': [
        {'userId': 'U1', 'profile': {'name': {'fullName': 'Anish Kumar'}, 'emailAddress': 'anish@school.org'}},
    ]}))
    client = ClassroomClient('http://classroom.test/', 'C1', token='secret', timeout=5, session=session)

    students = client.list_students()

    assert [s.user_id for s in students] == ['U1']
    request = session.requests[0]
    assert request['url'] == 'http://classroom.test/courses/C1/students'
    assert request['headers'] == {'Authorization': 'Bearer secret'}
    assert request['timeout'] == 5


def test_classroom_coursework_and_submissions():
    session = FakeSession(FakeResponse(payload={'courseWork': [{'id': 'A1', 'title': 'Essay'}]}))
    client = ClassroomClient('http://classroom.test', 'C1', session=session)

    assert [a.id for a in client.list_coursework()] == ['A1']
    assert session.requests[0]['params'] == {'courseWorkStates': 'PUBLISHED'}
    assert session.requests[0]['headers'] == {}

    session.response = FakeResponse(payload={'studentSubmissions': [{'userId': 'U1', 'state': 'TURNED_IN'}]})
    submissions = client.list_submissions('A1')
    assert submissions[0].user_id == 'U1'
    assert session.requests[1]['url'] == 'http://classroom.test/courses/C1/courseWork/A1/studentSubmissions'


def test_non_200_raises_upstream_error():
    client = ClassroomClient('http://classroom.test', 'C1', session=FakeSession(FakeResponse(status_code=403)))
    with pytest.raises(UpstreamError) as exc_info:
        client.list_students()
    assert exc_info.value.service == 'classroom'
    assert exc_info.value.status_code == 403


def test_connection_error_raises_upstream_error():
    session = FakeSession(error=requests.ConnectionError("connection refused"))
    client = AttendanceClient('http://attendance.test/exec', session=session)
    with pytest.raises(UpstreamError) as exc_info:
        client.fetch_records()
    assert exc_info.value.service == 'attendance'
    assert exc_info.value.status_code is None


def test_invalid_json_raises_upstream_error():
    session = FakeSession(FakeResponse(invalid_json=True))
    client = AttendanceClient('http://attendance.test/exec', session=session)
    with pytest.raises(UpstreamError):
        client.fetch_records()


def test_attendance_fetch_records():
    session = FakeSession(FakeResponse(payload={'status': 'success', 'data': [
        {'name': 'Anish Kumar', 's_no': 1, 'attendancePercentage': 90, 'sessions': []},
    ]}))
    client = AttendanceClient('http://attendance.test/exec', api_key='k1', session=session)

    records = client.fetch_records()

    assert records[0].name == 'Anish Kumar'
    assert session.requests[0]['params'] == {'apiKey': 'k1'}


def test_attendance_error_status_raises_upstream_error():
    session = FakeSession(FakeResponse(payload={'status': 'error', 'message': 'Sheet not found'}))
    client = AttendanceClient('http://attendance.test/exec', session=session)
    with pytest.raises(UpstreamError) as exc_info:
        client.fetch_records()
    assert 'Invalid attendance API response' in exc_info.value.message


@pytest.mark.parametrize("method,args,payload", [
    ('list_students', (), {'students': {'oops': 1}}),
    ('list_coursework', (), {'courseWork': 'oops'}),
    ('list_submissions', ('A1',), {'studentSubmissions': 42}),
])
def test_malformed_classroom_payload_raises_upstream_error(method, args, payload):
    """A payload of the wrong shape is an upstream failure, not a server error."""
    client = ClassroomClient('http://classroom.test', 'C1', session=FakeSession(FakeResponse(payload=payload)))
    with pytest.raises(UpstreamError) as exc_info:
        getattr(client, method)(*args)
    assert exc_info.value.service == 'classroom'
    assert exc_info.value.message.startswith('Expected a list')


class ClosingSession(FakeSession):
    closed = False

    def close(self):
        self.closed = True


def test_close_releases_session():
    classroom_session = ClosingSession()
    ClassroomClient('http://classroom.test', 'C1', session=classroom_session).close()
    assert classroom_session.closed

    attendance_session = ClosingSession()
    AttendanceClient('http://attendance.test/exec', session=attendance_session).close()
    assert attendance_session.closed
