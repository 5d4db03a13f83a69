import logging
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4
from zoneinfo import ZoneInfo
from datetime import datetime

from pydantic import BaseModel

from ..db.db_client import AsyncPostgresClient, DuplicateKeyError
from ..models.db_models import Attendance, User
from ..modules.calendar_days import now_local, start_of_day, to_local
from .errors import AlreadyMarkedTodayError, InvalidInputError, UnknownUserError

logger = logging.getLogger(__name__)

UNKNOWN_SECTION = "Unknown Section"


class MarkedAttendance(BaseModel):
    attendance: Attendance
    name: str


class AttendanceEntry(BaseModel):
    """An attendance record joined with its owner, if the owner still exists."""
    attendance: Attendance
    user: Optional[User] = None


class AttendanceService:
    """
    Records at most one attendance per school id per calendar day.
    `clock` returns the current local wall-clock time; tests pin it.
    """
    def __init__(
        self,
        db_client: AsyncPostgresClient,
        zone: Optional[ZoneInfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db_client = db_client
        self.zone = zone
        self.clock = clock or (lambda: now_local(self.zone))

    async def mark(self, school_id: str) -> MarkedAttendance:
        school_id = (school_id or "").strip()
        if not school_id:
            raise InvalidInputError("School ID is required.")

        user = await self.db_client.get_user_by_school_id(school_id)
        if not user:
            raise UnknownUserError("User not found.")

        now = to_local(self.clock(), self.zone)
        today = start_of_day(now, self.zone)
        if await self.db_client.get_attendance(school_id, today):
            raise AlreadyMarkedTodayError("Attendance already marked for today.")

        attendance = Attendance(
            id=uuid4(),
            user_id=user.id,
            school_id=school_id,
            date=today,
            time_in=now.strftime("%H:%M:%S"),
        )
        try:
            attendance = await self.db_client.add_attendance(attendance)
        except DuplicateKeyError as e:
            raise AlreadyMarkedTodayError("Attendance already marked for today.") from e

        logger.info(f"Attendance marked for '{school_id}' at {attendance.time_in}.")
        return MarkedAttendance(attendance=attendance, name=user.display_name)

    async def list_for_user(self, school_id: str) -> Tuple[User, List[Attendance]]:
        """The owner and their records, latest day first."""
        user = await self.db_client.get_user_by_school_id(school_id)
        if not user:
            raise UnknownUserError("User not found.")
        return user, await self.db_client.get_attendances(school_id)

    async def list_all(self) -> List[AttendanceEntry]:
        records = await self.db_client.get_attendances()
        users = await self.db_client.get_users_by_ids(list({record.user_id for record in records}))
        user_map = {user.id: user for user in users}
        return [AttendanceEntry(attendance=record, user=user_map.get(record.user_id)) for record in records]

    async def list_by_section(self) -> Dict[str, List[AttendanceEntry]]:
        """Groups `list_all` by the owner's section, keeping the latest-first order."""
        sections: Dict[str, List[AttendanceEntry]] = OrderedDict()
        for entry in await self.list_all():
            section = entry.user.section if entry.user and entry.user.section else UNKNOWN_SECTION
            sections.setdefault(section, []).append(entry)
        return sections
