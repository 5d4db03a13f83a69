import logging
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field

from ..db.db_client import AsyncPostgresClient, DuplicateKeyError, GROUP_NAME_CONSTRAINT
from ..models.db_models import Group, User
from .errors import (
    AlreadyGroupedError,
    DuplicateNameError,
    InvalidInputError,
    NotAMemberError,
    NotFoundError,
    UnknownMemberError,
)

logger = logging.getLogger(__name__)


# --- Result models ---

class GroupDetails(BaseModel):
    """A group with its member records resolved."""
    group: Group
    members: List[User] = Field(default_factory=list)


class MemberAdded(BaseModel):
    status: Literal["added"] = "added"
    school_id: str
    user_id: UUID
    name: str


class MemberSkipped(BaseModel):
    status: Literal["skipped"] = "skipped"
    school_id: str
    reason: str = "already_in_group"
    group: Optional[str] = Field(None, description="Name of the group the user already belongs to.")


class MemberNotFound(BaseModel):
    status: Literal["not_found"] = "not_found"
    school_id: str


MemberOutcome = Annotated[Union[MemberAdded, MemberSkipped, MemberNotFound], Field(discriminator="status")]


class AddMembersReport(BaseModel):
    """Per-item outcome of a batch add; one bad id never blocks the others."""
    group_id: UUID
    outcomes: List[MemberOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def added(self) -> List[MemberAdded]:
        return [o for o in self.outcomes if isinstance(o, MemberAdded)]

    @computed_field
    @property
    def skipped(self) -> List[MemberSkipped]:
        return [o for o in self.outcomes if isinstance(o, MemberSkipped)]

    @computed_field
    @property
    def not_found(self) -> List[MemberNotFound]:
        return [o for o in self.outcomes if isinstance(o, MemberNotFound)]


def _clean_ids(school_ids: List[str]) -> List[str]:
    """Strips blanks and duplicates while keeping the caller's order."""
    return list(dict.fromkeys(s.strip() for s in school_ids if s and s.strip()))


class GroupService:
    """
    Keeps every user in at most one group.
    Membership is stored once, in GroupMembers; a user's group is always derived from it.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def _get_group_or_raise(self, group_id: UUID) -> Group:
        group = await self.db_client.get_group(group_id)
        if not group:
            raise NotFoundError("Group not found.")
        return group

    async def create_group(self, name: str, school_ids: List[str]) -> GroupDetails:
        name = (name or "").strip()
        school_ids = _clean_ids(school_ids or [])
        if not name or not school_ids:
            raise InvalidInputError("Group name and members (schoolIds) are required.")

        if await self.db_client.get_group_by_name(name):
            raise DuplicateNameError("Group name already exists.")

        users = await self.db_client.get_users_by_school_ids(school_ids)
        found = {user.school_id for user in users}
        missing = [school_id for school_id in school_ids if school_id not in found]
        if missing:
            raise UnknownMemberError(f"One or more schoolIds do not exist in the system: {', '.join(missing)}")

        user_ids = [user.id for user in users]
        if await self.db_client.get_groups_with_any_member(user_ids):
            raise AlreadyGroupedError("One or more members already belong to another group.")

        try:
            group = await self.db_client.add_group(uuid4(), name, user_ids)
        except DuplicateKeyError as e:
            # Lost a race with a concurrent request; the constraint tells us which one.
            if e.constraint == GROUP_NAME_CONSTRAINT:
                raise DuplicateNameError("Group name already exists.") from e
            raise AlreadyGroupedError("One or more members already belong to another group.") from e

        logger.info(f"Group '{group.name}' created with {len(user_ids)} member(s).")
        members = [user.model_copy(update={"group_id": group.id}) for user in users]
        return GroupDetails(group=group, members=members)

    async def add_members(self, group_id: UUID, school_ids: List[str]) -> AddMembersReport:
        school_ids = _clean_ids(school_ids or [])
        if not school_ids:
            raise InvalidInputError("School ID(s) are required.")

        group = await self._get_group_or_raise(group_id)
        report = AddMembersReport(group_id=group.id)

        for school_id in school_ids:
            user = await self.db_client.get_user_by_school_id(school_id)
            if not user:
                report.outcomes.append(MemberNotFound(school_id=school_id))
                continue

            current = await self.db_client.get_group_of_user(user.id)
            if current:
                report.outcomes.append(MemberSkipped(school_id=school_id, group=current.name))
                continue

            try:
                await self.db_client.add_group_member(group.id, user.id)
            except DuplicateKeyError:
                logger.warning(f"User '{school_id}' joined another group while being added to '{group.name}'.")
                report.outcomes.append(MemberSkipped(school_id=school_id))
                continue

            report.outcomes.append(MemberAdded(school_id=school_id, user_id=user.id, name=user.display_name))

        logger.info(
            f"Group '{group.name}': added {len(report.added)}, skipped {len(report.skipped)}, "
            f"not found {len(report.not_found)}."
        )
        return report

    async def remove_member(self, group_id: UUID, user_id: UUID) -> Group:
        group = await self._get_group_or_raise(group_id)
        if user_id not in group.member_ids:
            raise NotAMemberError("User is not a member of this group.")

        if not await self.db_client.remove_group_member(group_id, user_id):
            raise NotAMemberError("User is not a member of this group.")

        logger.info(f"User {user_id} removed from group '{group.name}'.")
        return await self._get_group_or_raise(group_id)

    async def rename_group(self, group_id: UUID, name: str) -> Group:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("New group name is required.")

        await self._get_group_or_raise(group_id)
        if await self.db_client.get_group_by_name(name, exclude_id=group_id):
            raise DuplicateNameError("Another group with this name already exists.")

        try:
            group = await self.db_client.rename_group(group_id, name)
        except DuplicateKeyError as e:
            raise DuplicateNameError("Another group with this name already exists.") from e
        if not group:
            raise NotFoundError("Group not found.")
        return group

    async def delete_group(self, group_id: UUID):
        if not await self.db_client.delete_group(group_id):
            raise NotFoundError("Group not found.")
        logger.info(f"Group {group_id} deleted.")

    async def get_group(self, group_id: UUID) -> GroupDetails:
        group = await self._get_group_or_raise(group_id)
        members = await self.db_client.get_group_members(group_id)
        return GroupDetails(group=group, members=members)

    async def list_groups(self, search: Optional[str] = None) -> List[GroupDetails]:
        search = search.strip() if search and search.strip() else None
        groups = await self.db_client.list_groups(search)

        member_ids = [member_id for group in groups for member_id in group.member_ids]
        users = await self.db_client.get_users_by_ids(member_ids)
        user_map = {user.id: user for user in users}

        return [
            GroupDetails(group=group, members=[user_map[m] for m in group.member_ids if m in user_map])
            for group in groups
        ]
