from fastapi import APIRouter, Depends
from typing import List
from uuid import UUID

from ..models.db_models import User
from ..services.errors import ServiceError
from ..services.attendance_service import AttendanceService
from ..services.duty_service import DutyService
from .schemas.attendance import AttendanceResponse, SectionAttendanceResponse, UserAttendanceResponse
from .schemas.duty import DutyResponse, GroupScheduleResponse, UserDutiesResponse
from .schemas.user import MemberSummary
from .auth import self_or_admin
from .attendance import entry_response
from .dependencies import get_attendance_service, get_duty_service
from .utilities.errors import to_http_exception

router = APIRouter(prefix="/student", tags=["Student Endpoints"])


# === Attendance ===

@router.get("/attendance/fetchAttendance/{school_id}", response_model=UserAttendanceResponse, summary="A student's attendance, latest first")
async def fetch_attendance(
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


@router.get("/attendance/fetchAllAttendance", response_model=List[SectionAttendanceResponse], summary="All attendance grouped by section")
async def fetch_all_attendance(
    _: User = Depends(self_or_admin),
    service: AttendanceService = Depends(get_attendance_service)
):
    """Only admins and professors get past `self_or_admin` here, since there is no own id to match."""
    sections = await service.list_by_section()
    return [
        SectionAttendanceResponse(section=section, records=[entry_response(entry) for entry in entries])
        for section, entries in sections.items()
    ]


# === Duties ===

@router.get("/duties/fetchDuties/{user_id}", response_model=UserDutiesResponse, summary="Duties of the user's group")
async def fetch_duties(
    user_id: UUID,
    _: User = Depends(self_or_admin),
    service: DutyService = Depends(get_duty_service)
):
    try:
        user, group, duties = await service.list_duties_for_user(user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return UserDutiesResponse(
        user_id=user.id,
        name=user.name,
        email=user.email,
        group=group.name if group else None,
        duties=[DutyResponse.model_validate(duty) for duty in duties]
    )


@router.get("/duties/fetchAllDuties", response_model=List[GroupScheduleResponse], summary="Every group with its members and duties")
async def fetch_all_duties(
    _: User = Depends(self_or_admin),
    service: DutyService = Depends(get_duty_service)
):
    try:
        schedules = await service.list_group_schedules()
    except ServiceError as e:
        raise to_http_exception(e)
    return [
        GroupScheduleResponse(
            group_id=schedule.group.id,
            group_name=schedule.group.name,
            members=[MemberSummary.model_validate(member) for member in schedule.members],
            duties=[DutyResponse.model_validate(duty) for duty in schedule.duties]
        )
        for schedule in schedules
    ]
