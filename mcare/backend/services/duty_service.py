import logging
from datetime import date, datetime
from typing import List, Optional, Union
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from ..db.db_client import AsyncPostgresClient, DuplicateKeyError
from ..models.db_models import Duty, Group, User
from ..modules.calendar_days import day_bounds, start_of_day
from ..tools.mailer import Notifier
from .errors import (
    DuplicateDutyForDayError,
    InvalidInputError,
    NotFoundError,
    UnknownGroupError,
)

logger = logging.getLogger(__name__)

DUTY_TEXT_FIELDS = ("place", "time_range", "clinical_instructor", "area")


class DutyAssignment(BaseModel):
    """A duty together with the group members resolved when it was written."""
    duty: Duty
    members: List[User] = Field(default_factory=list)


class DutyPatch(BaseModel):
    """Merge-patch for a duty: None (or blank text) leaves the stored value unchanged."""
    duty_date: Optional[Union[datetime, date]] = None
    place: Optional[str] = None
    time_range: Optional[str] = None
    clinical_instructor: Optional[str] = None
    area: Optional[str] = None


class GroupSchedule(BaseModel):
    group: Group
    members: List[User] = Field(default_factory=list)
    duties: List[Duty] = Field(default_factory=list)


class DutyService:
    """
    Schedules duties: at most one duty per group per calendar day, and every
    create/update is announced to the members of the group at that moment.
    """
    def __init__(self, db_client: AsyncPostgresClient, notifier: Notifier, zone: Optional[ZoneInfo] = None):
        self.db_client = db_client
        self.notifier = notifier
        self.zone = zone

    async def _notify(self, kind: str, members: List[User], duty: Duty, group_name: str):
        # Mail failures never undo the duty write.
        try:
            if kind == "created":
                await self.notifier.notify_duty_assigned(members, duty, group_name)
            else:
                await self.notifier.notify_duty_updated(members, duty, group_name)
        except Exception as e:
            logger.error(f"Duty {duty.id} was {kind} but notifying '{group_name}' failed: {e}", exc_info=True)

    async def create_duty(
        self,
        group_id: UUID,
        duty_date: Union[datetime, date],
        place: str,
        time_range: str,
        clinical_instructor: str,
        area: str,
    ) -> DutyAssignment:
        if not all(value and value.strip() for value in (place, time_range, clinical_instructor, area)):
            raise InvalidInputError(
                "All fields (group, date, place, time, clinicalInstructor, area) are required."
            )

        group = await self.db_client.get_group(group_id)
        if not group:
            raise UnknownGroupError("Group not found.")

        start, end = day_bounds(duty_date, self.zone)
        if await self.db_client.find_group_duty_between(group_id, start, end):
            raise DuplicateDutyForDayError("This group already has a duty assigned on the same date.")

        duty = Duty(
            id=uuid4(),
            group_id=group_id,
            duty_date=start,
            place=place.strip(),
            time_range=time_range.strip(),
            clinical_instructor=clinical_instructor.strip(),
            area=area.strip(),
        )
        try:
            duty = await self.db_client.add_duty(duty)
        except DuplicateKeyError as e:
            raise DuplicateDutyForDayError("This group already has a duty assigned on the same date.") from e

        logger.info(f"Duty {duty.id} created for group '{group.name}' on {start:%Y-%m-%d}.")

        # Snapshot of the membership right now; later joiners are not notified.
        members = await self.db_client.get_group_members(group_id)
        if members:
            await self._notify("created", members, duty, group.name)
        return DutyAssignment(duty=duty, members=members)

    async def update_duty(self, duty_id: UUID, patch: DutyPatch) -> DutyAssignment:
        duty = await self.db_client.get_duty(duty_id)
        if not duty:
            raise NotFoundError("Duty not found.")

        changes = {}
        if patch.duty_date is not None:
            changes["duty_date"] = start_of_day(patch.duty_date, self.zone)
        for field in DUTY_TEXT_FIELDS:
            value = getattr(patch, field)
            if value and value.strip():
                changes[field] = value.strip()

        # No same-day pre-check here; the (group, day) unique constraint still applies.
        try:
            updated = await self.db_client.update_duty(duty_id, changes)
        except DuplicateKeyError as e:
            raise DuplicateDutyForDayError("This group already has a duty assigned on the same date.") from e
        if not updated:
            raise NotFoundError("Duty not found.")

        group = await self.db_client.get_group(updated.group_id)
        if not group:
            logger.warning(f"Duty {duty_id} updated but its group {updated.group_id} no longer exists.")
            return DutyAssignment(duty=updated)

        members = await self.db_client.get_group_members(group.id)
        if members:
            await self._notify("updated", members, updated, group.name)
        logger.info(f"Duty {duty_id} updated ({', '.join(changes) or 'no changes'}).")
        return DutyAssignment(duty=updated, members=members)

    async def delete_duty(self, duty_id: UUID):
        if not await self.db_client.delete_duty(duty_id):
            raise NotFoundError("Duty not found.")
        logger.info(f"Duty {duty_id} deleted.")

    async def list_duties(self, group_id: Optional[UUID] = None) -> List[Duty]:
        """Date ascending, optionally for one group only."""
        return await self.db_client.get_duties(group_id)

    async def list_duties_for_user(self, user_id: UUID) -> tuple:
        """Returns (user, group, duties) for the user's current group."""
        user = await self.db_client.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found.")
        if not user.group_id:
            raise NotFoundError("This user does not belong to any group, so no duties.")

        group = await self.db_client.get_group(user.group_id)
        duties = await self.db_client.get_duties(user.group_id)
        return user, group, duties

    async def list_group_schedules(self) -> List[GroupSchedule]:
        """Every group with its members and its duties."""
        groups = await self.db_client.list_groups()
        if not groups:
            raise NotFoundError("No groups found.")

        duties = await self.db_client.get_duties()
        users = await self.db_client.get_users_by_ids([m for group in groups for m in group.member_ids])
        user_map = {user.id: user for user in users}

        return [
            GroupSchedule(
                group=group,
                members=[user_map[m] for m in group.member_ids if m in user_map],
                duties=[duty for duty in duties if duty.group_id == group.id],
            )
            for group in groups
        ]
