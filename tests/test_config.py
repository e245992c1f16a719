"""Unit tests for environment-driven settings."""

import pytest

from app.config import ConfigurationError, Settings, load_settings


def test_load_settings_defaults():
    settings = load_settings({})
    assert settings.classroom_id == ''
    assert settings.cache_ttl_seconds == 300
    assert settings.max_points_per_session == 10
    assert settings.allow_origins == ['*']
    assert settings.debug is False


def test_load_settings_from_mapping():
    settings = load_settings({
        'CLASSROOM_API_URL': 'http://classroom.test/',
        'CLASSROOM_ID': 'C1',
        'ATTENDANCE_API_URL': 'http://attendance.test/exec',
        'MAX_POINTS_PER_SESSION': '5',
        'MAX_UPLOAD_SIZE_MB': '2',
        'ALLOW_ORIGINS': 'http://localhost:3000, https://dashboard.example.org',
        'DEBUG': 'True',
    })
    assert settings.classroom_api_url == 'http://classroom.test'
    assert settings.max_points_per_session == 5.0
    assert settings.max_upload_size == 2 * 1024 * 1024
    assert settings.allow_origins == ['http://localhost:3000', 'https://dashboard.example.org']
    assert settings.debug is True


def test_require_classroom():
    with pytest.raises(ConfigurationError, match='CLASSROOM_ID'):
        Settings().require_classroom()
    with pytest.raises(ConfigurationError, match='CLASSROOM_API_URL'):
        Settings(classroom_id='C1').require_classroom()
    Settings(classroom_id='C1', classroom_api_url='http://classroom.test').require_classroom()


def test_require_attendance():
    with pytest.raises(ConfigurationError, match='ATTENDANCE_API_URL'):
        Settings().require_attendance()
