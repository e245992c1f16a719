"""Environment-driven configuration."""

import os
from typing import List, Optional, Mapping

from dotenv import load_dotenv
from pydantic import BaseModel


class ConfigurationError(Exception):
    """Raised when a route needs a setting that is not configured."""


class Settings(BaseModel):
    classroom_api_url: str = ''
    classroom_id: str = ''
    classroom_api_token: str = ''
    attendance_api_url: str = ''
    attendance_api_key: str = ''
    request_timeout_seconds: float = 15.0
    cache_ttl_seconds: float = 300.0
    cache_max_size: int = 100
    roster_cache_ttl_seconds: float = 120.0
    max_points_per_session: float = 10.0
    max_upload_size_mb: int = 10
    allow_origins: List[str] = ['*']
    debug: bool = False

    @property
    def max_upload_size(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def require_classroom(self) -> None:
        if not self.classroom_id:
            raise ConfigurationError('CLASSROOM_ID not configured')
        if not self.classroom_api_url:
            raise ConfigurationError('CLASSROOM_API_URL not configured')

    def require_attendance(self) -> None:
        if not self.attendance_api_url:
            raise ConfigurationError('ATTENDANCE_API_URL not configured')


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from; defaults to os.environ after loading .env

    Returns:
        Settings instance
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    return Settings(
        classroom_api_url=environ.get('CLASSROOM_API_URL', '').rstrip('/'),
        classroom_id=environ.get('CLASSROOM_ID', ''),
        classroom_api_token=environ.get('CLASSROOM_API_TOKEN', ''),
        attendance_api_url=environ.get('ATTENDANCE_API_URL', ''),
        attendance_api_key=environ.get('ATTENDANCE_API_KEY', ''),
        request_timeout_seconds=float(environ.get('REQUEST_TIMEOUT_SECONDS', '15')),
        cache_ttl_seconds=float(environ.get('CACHE_TTL_SECONDS', '300')),
        cache_max_size=int(environ.get('CACHE_MAX_SIZE', '100')),
        roster_cache_ttl_seconds=float(environ.get('ROSTER_CACHE_TTL_SECONDS', '120')),
        max_points_per_session=float(environ.get('MAX_POINTS_PER_SESSION', '10')),
        max_upload_size_mb=int(environ.get('MAX_UPLOAD_SIZE_MB', '10')),
        allow_origins=[o.strip() for o in environ.get('ALLOW_ORIGINS', '*').split(',') if o.strip()],
        debug=environ.get('DEBUG', 'False').lower() == 'true',
    )
