import logging
from fastapi import APIRouter, Depends, Request, status
from typing import List

from ..models.db_models import User
from ..services.errors import ServiceError
from ..services.attendance_service import AttendanceEntry, AttendanceService
from .schemas.attendance import (
    AttendanceResponse,
    AttendanceWithUserResponse,
    MarkAttendanceResponse,
    UserAttendanceResponse,
)
from .schemas.user import MemberSummary
from .auth import admin_only, self_or_admin
from .dependencies import get_attendance_service
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attendance", tags=["Attendance Endpoints"])


def entry_response(entry: AttendanceEntry) -> AttendanceWithUserResponse:
    return AttendanceWithUserResponse(
        **AttendanceResponse.model_validate(entry.attendance).model_dump(),
        user=MemberSummary.model_validate(entry.user) if entry.user else None
    )


@router.get(
    "/mark/{school_id}",
    response_model=MarkAttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Mark the holder of a scanned QR code present for today"
)
@limiter.limit("120/minute")
async def mark_attendance(
    request: Request,
    school_id: str,
    _: User = Depends(admin_only),
    service: AttendanceService = Depends(get_attendance_service)
):
    """
    This is the URL encoded in every QR code; an admin's scanner opens it.
    A second scan on the same day is rejected.
    """
    try:
        marked = await service.mark(school_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return MarkAttendanceResponse(
        name=marked.name,
        school_id=marked.attendance.school_id,
        date=marked.attendance.date,
        time_in=marked.attendance.time_in
    )


@router.get("/{school_id}", response_model=UserAttendanceResponse, summary="Attendance records of one user")
async def get_user_attendance(
    school_id: str,
    _: User = Depends(self_or_admin),
    service: AttendanceService = Depends(get_attendance_service)
):
    try:
        user, records = await service.list_for_user(school_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return UserAttendanceResponse(user_id=user.id, name=user.name, school_id=user.school_id,
                                  records=[AttendanceResponse.model_validate(record) for record in records])


@router.get("", response_model=List[AttendanceWithUserResponse], summary="All attendance records with user details")
async def get_all_attendance(
    _: User = Depends(admin_only),
    service: AttendanceService = Depends(get_attendance_service)
):
    return [entry_response(entry) for entry in await service.list_all()]
