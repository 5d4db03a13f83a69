from fastapi import APIRouter, Depends, Response, Request, status
from typing import List, Optional
from uuid import UUID

from ..services.errors import ServiceError
from ..services.user_service import UserService
from ..services.group_service import AddMembersReport, GroupDetails, GroupService
from ..services.duty_service import DutyAssignment, DutyPatch, DutyService
from .schemas.user import AdminUserUpdateRequest, MemberSummary, UserResponse
from .schemas.group import AddMembersRequest, GroupCreateRequest, GroupRenameRequest, GroupResponse
from .schemas.duty import DutyAssignmentResponse, DutyCreateRequest, DutyResponse, DutyUpdateRequest
from .auth import admin_only
from .dependencies import get_duty_service, get_group_service, get_user_service
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

router = APIRouter(prefix="/admin", tags=["Admin Endpoints"], dependencies=[Depends(admin_only)])


# --- Helpers ---

def _group_response(details: GroupDetails) -> GroupResponse:
    return GroupResponse(
        id=details.group.id,
        name=details.group.name,
        members=[MemberSummary.model_validate(member) for member in details.members],
        created_at=details.group.created_at
    )


def _assignment_response(assignment: DutyAssignment) -> DutyAssignmentResponse:
    return DutyAssignmentResponse(
        duty=DutyResponse.model_validate(assignment.duty),
        assigned_members=[MemberSummary.model_validate(member) for member in assignment.members]
    )


# === Students ===

@router.get("/students/fetchAllStudents", response_model=List[UserResponse], summary="List every student account")
async def fetch_all_students(service: UserService = Depends(get_user_service)):
    return await service.list_students()


@router.put("/students/update/{user_id}", response_model=UserResponse, summary="Edit a student's information")
async def update_student(user_id: UUID, update_request: AdminUserUpdateRequest, service: UserService = Depends(get_user_service)):
    try:
        return await service.admin_update_user(user_id, **update_request.model_dump())
    except ServiceError as e:
        raise to_http_exception(e)


@router.delete("/students/delete/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a student")
async def delete_student(user_id: UUID, service: UserService = Depends(get_user_service)):
    try:
        await service.delete_user(user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# === Duties ===

@router.post("/duty/create", response_model=DutyAssignmentResponse, status_code=status.HTTP_201_CREATED, summary="Schedule a duty and notify the group")
@limiter.limit("30/minute")
async def create_duty(request: Request, create_request: DutyCreateRequest, service: DutyService = Depends(get_duty_service)):
    try:
        assignment = await service.create_duty(
            group_id=create_request.group_id,
            duty_date=create_request.date,
            place=create_request.place,
            time_range=create_request.time_range,
            clinical_instructor=create_request.clinical_instructor,
            area=create_request.area
        )
    except ServiceError as e:
        raise to_http_exception(e)
    return _assignment_response(assignment)


@router.put("/duty/update/{duty_id}", response_model=DutyAssignmentResponse, summary="Edit a duty and notify the group")
@limiter.limit("30/minute")
async def update_duty(request: Request, duty_id: UUID, update_request: DutyUpdateRequest, service: DutyService = Depends(get_duty_service)):
    try:
        assignment = await service.update_duty(duty_id, DutyPatch(duty_date=update_request.date, **update_request.model_dump(exclude={"date"})))
    except ServiceError as e:
        raise to_http_exception(e)
    return _assignment_response(assignment)


@router.get("/duty", response_model=List[DutyResponse], summary="List duties, date ascending")
async def list_duties(group_id: Optional[UUID] = None, service: DutyService = Depends(get_duty_service)):
    return await service.list_duties(group_id)


@router.get("/duty/group/{group_id}", response_model=List[DutyResponse], summary="List the duties of one group")
async def list_group_duties(group_id: UUID, service: DutyService = Depends(get_duty_service)):
    return await service.list_duties(group_id)


@router.delete("/duty/delete/{duty_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a duty")
async def delete_duty(duty_id: UUID, service: DutyService = Depends(get_duty_service)):
    try:
        await service.delete_duty(duty_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# === Groups ===

@router.post("/group/create", response_model=GroupResponse, status_code=status.HTTP_201_CREATED, summary="Create a group with its members")
async def create_group(create_request: GroupCreateRequest, service: GroupService = Depends(get_group_service)):
    try:
        details = await service.create_group(create_request.name, create_request.members)
    except ServiceError as e:
        raise to_http_exception(e)
    return _group_response(details)


@router.get("/group", response_model=List[GroupResponse], summary="List groups, newest first")
async def list_groups(search: Optional[str] = None, service: GroupService = Depends(get_group_service)):
    return [_group_response(details) for details in await service.list_groups(search)]


@router.get("/group/{group_id}", response_model=GroupResponse, summary="Get one group with its members")
async def get_group(group_id: UUID, service: GroupService = Depends(get_group_service)):
    try:
        return _group_response(await service.get_group(group_id))
    except ServiceError as e:
        raise to_http_exception(e)


@router.post("/group/{group_id}/members", response_model=AddMembersReport, summary="Add members; reports each school id separately")
async def add_members(group_id: UUID, add_request: AddMembersRequest, service: GroupService = Depends(get_group_service)):
    try:
        return await service.add_members(group_id, add_request.school_ids)
    except ServiceError as e:
        raise to_http_exception(e)


@router.delete("/group/{group_id}/members/{user_id}", response_model=GroupResponse, summary="Remove a member from a group")
async def remove_member(group_id: UUID, user_id: UUID, service: GroupService = Depends(get_group_service)):
    try:
        await service.remove_member(group_id, user_id)
        return _group_response(await service.get_group(group_id))
    except ServiceError as e:
        raise to_http_exception(e)


@router.put("/group/{group_id}/rename", response_model=GroupResponse, summary="Rename a group")
async def rename_group(group_id: UUID, rename_request: GroupRenameRequest, service: GroupService = Depends(get_group_service)):
    try:
        await service.rename_group(group_id, rename_request.name)
        return _group_response(await service.get_group(group_id))
    except ServiceError as e:
        raise to_http_exception(e)


@router.delete("/group/{group_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a group; its duties stay")
async def delete_group(group_id: UUID, service: GroupService = Depends(get_group_service)):
    try:
        await service.delete_group(group_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
