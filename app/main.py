"""FastAPI main application for the Classroom Attendance Monitor."""

import asyncio
import traceback
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.attendance import build_attendance_report, reconcile, summarize
from app.cache import TTLCache, assignments_key, student_key, students_key
from app.clients import AttendanceClient, ClassroomClient, UpstreamError
from app.config import ConfigurationError, Settings, load_settings
from app.models import (
    AttendanceReport,
    CacheStats,
    ClassroomStudent,
    PerformanceReport,
    StudentLookupResponse,
    UploadResponse,
)
from app.parsers import load_attendance_workbook
from app.performance import build_performance_report


router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_classroom_client(settings: Settings = Depends(get_settings)) -> Iterator[ClassroomClient]:
    """Request-scoped classroom client; its HTTP session is closed after the response."""
    settings.require_classroom()
    client = ClassroomClient(
        base_url=settings.classroom_api_url,
        course_id=settings.classroom_id,
        token=settings.classroom_api_token,
        timeout=settings.request_timeout_seconds,
    )
    try:
        yield client
    finally:
        client.close()


def get_attendance_client(settings: Settings = Depends(get_settings)) -> Iterator[AttendanceClient]:
    settings.require_attendance()
    client = AttendanceClient(
        url=settings.attendance_api_url,
        api_key=settings.attendance_api_key,
        timeout=settings.request_timeout_seconds,
    )
    try:
        yield client
    finally:
        client.close()


async def fetch_roster(
    client: ClassroomClient,
    cache: TTLCache,
    settings: Settings
) -> List[ClassroomStudent]:
    """Classroom roster, cached for a short window."""
    return await cache.get_or_set(
        students_key(client.course_id),
        lambda: run_in_threadpool(client.list_students),
        settings.roster_cache_ttl_seconds,
    )


@router.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@router.get("/api/classroom/students", response_model=List[ClassroomStudent])
async def list_students(
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    classroom: ClassroomClient = Depends(get_classroom_client)
):
    """Classroom roster."""
    return await fetch_roster(classroom, cache, settings)


@router.get("/api/classroom/attendance", response_model=AttendanceReport)
async def attendance_report(
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    classroom: ClassroomClient = Depends(get_classroom_client),
    attendance: AttendanceClient = Depends(get_attendance_client)
):
    """Reconciled attendance metrics for every student."""
    roster, records = await asyncio.gather(
        fetch_roster(classroom, cache, settings),
        run_in_threadpool(attendance.fetch_records),
    )
    reconciliation = reconcile(roster, records, settings.max_points_per_session)
    return build_attendance_report(reconciliation)


@router.get("/api/classroom/performance-metrics", response_model=PerformanceReport)
async def performance_metrics(
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    classroom: ClassroomClient = Depends(get_classroom_client),
    attendance: AttendanceClient = Depends(get_attendance_client)
):
    """Coursework completion and grades blended with attendance."""
    roster, assignments, records = await asyncio.gather(
        fetch_roster(classroom, cache, settings),
        cache.get_or_set(
            assignments_key(classroom.course_id),
            lambda: run_in_threadpool(classroom.list_coursework),
            settings.cache_ttl_seconds,
        ),
        run_in_threadpool(attendance.fetch_records),
    )
    submission_lists = await asyncio.gather(*[
        run_in_threadpool(classroom.list_submissions, assignment.id)
        for assignment in assignments
    ])
    submissions = [s for batch in submission_lists for s in batch]

    reconciliation = reconcile(roster, records, settings.max_points_per_session)
    return build_performance_report(
        reconciliation, assignments, submissions, settings.max_points_per_session
    )


@router.get("/api/classroom/student-lookup/{identifier}", response_model=StudentLookupResponse)
async def student_lookup(
    identifier: str,
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    classroom: ClassroomClient = Depends(get_classroom_client),
    attendance: AttendanceClient = Depends(get_attendance_client)
):
    """Find a student by email or id and return their attendance metric."""
    # Emails match case-insensitively, user ids do not
    identifier = identifier.strip()
    cache_key = student_key(identifier.lower() if '@' in identifier else identifier)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    roster, records = await asyncio.gather(
        fetch_roster(classroom, cache, settings),
        run_in_threadpool(attendance.fetch_records),
    )
    reconciliation = reconcile(roster, records, settings.max_points_per_session)
    student = reconciliation.index.lookup(identifier)
    if student is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "Student not found",
                "message": f"No student found with identifier: {identifier}",
                "availableStudents": [
                    {"id": s.user_id, "email": s.email, "name": s.full_name} for s in roster
                ],
            },
        )

    result = StudentLookupResponse(
        student=student,
        attendance=reconciliation.metric_for(student.user_id),
    )
    cache.set(cache_key, result)
    return result


@router.post("/api/attendance/upload", response_model=UploadResponse)
async def upload_attendance(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    classroom: ClassroomClient = Depends(get_classroom_client)
):
    """Reconcile an uploaded attendance workbook against the classroom roster."""
    file_bytes = await file.read()
    if len(file_bytes) > settings.max_upload_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {settings.max_upload_size_mb}MB"
        )

    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Please upload an Excel file (.xlsx)"
        )

    try:
        records = load_attendance_workbook(file_bytes)
    except Exception as e:
        error_msg = f"Error loading Excel file: {str(e)}"
        print(f"ERROR: {error_msg}")
        print(f"Exception type: {type(e).__name__}")
        raise HTTPException(status_code=400, detail=error_msg)

    if not records:
        raise HTTPException(status_code=400, detail="No attendance records found in the uploaded file.")

    roster = await fetch_roster(classroom, cache, settings)
    report = build_attendance_report(
        reconcile(roster, records, settings.max_points_per_session)
    )
    return UploadResponse(
        success=True,
        message=f"Successfully processed {len(records)} attendance rows",
        report=report,
        summary=summarize(report),
    )


@router.get("/api/cache/stats", response_model=CacheStats)
async def cache_stats(cache: TTLCache = Depends(get_cache)):
    return CacheStats(**cache.stats())


def register_exception_handlers(app: FastAPI) -> None:
    # Every error leaves as JSON; specific handlers are registered first

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError):
        return JSONResponse(
            status_code=502,
            content={
                "error": f"Failed to fetch {exc.service} data",
                "details": exc.message,
                "service": exc.service,
            },
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(request: Request, exc: ConfigurationError):
        print(f"ERROR: Configuration error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Configuration error", "details": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_detail = str(exc)
        if request.app.state.settings.debug:
            error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"
        return JSONResponse(
            status_code=500,
            content={
                "detail": f"Internal server error: {error_detail}",
                "type": type(exc).__name__,
            },
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use; loaded from the environment if None
    """
    settings = settings or load_settings()

    app = FastAPI(title="Classroom Attendance Monitor", version="1.0.0")
    app.state.settings = settings
    app.state.cache = TTLCache(
        default_ttl=settings.cache_ttl_seconds,
        max_size=settings.cache_max_size,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
