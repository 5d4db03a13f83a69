import pytest
import pytest_asyncio
import uuid
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from unittest.mock import AsyncMock

from mcare.backend.services.attendance_service import AttendanceService, UNKNOWN_SECTION
from mcare.backend.services.errors import AlreadyMarkedTodayError, InvalidInputError, UnknownUserError
from mcare.backend.db.db_client import DuplicateKeyError, ATTENDANCE_DAY_CONSTRAINT
from mcare.backend.models.db_models import Attendance
from tests.factories import FIXED_NOW, make_user


def make_attendance(user, day: datetime, time_in: str = "08:00:00") -> Attendance:
    return Attendance(id=uuid.uuid4(), user_id=user.id, school_id=user.school_id, date=day, time_in=time_in)


# --- Fixtures ---

@pytest.fixture
def student():
    return make_user("S001", "Ana Cruz")


@pytest_asyncio.fixture
async def service_instance():
    """AttendanceService with a mocked database client and a clock pinned to 2025-06-10 08:00."""
    mock_db_client = AsyncMock()
    service = AttendanceService(db_client=mock_db_client, clock=lambda: FIXED_NOW)
    return service, mock_db_client


@pytest.mark.asyncio
class TestAttendanceService:
    async def test_mark_records_day_and_time_in(self, service_instance, student):
        service, mock_db = service_instance
        mock_db.get_user_by_school_id.return_value = student
        mock_db.get_attendance.return_value = None
        mock_db.add_attendance.side_effect = lambda attendance: attendance

        marked = await service.mark("S001")

        assert marked.name == "Ana Cruz"
        assert marked.attendance.date == datetime(2025, 6, 10, 0, 0)
        assert marked.attendance.time_in == "08:00:00"
        assert marked.attendance.user_id == student.id
        mock_db.get_attendance.assert_awaited_once_with("S001", datetime(2025, 6, 10))

    async def test_mark_uses_zone_wall_clock_for_day_and_time_in(self, student):
        mock_db = AsyncMock()
        mock_db.get_user_by_school_id.return_value = student
        mock_db.get_attendance.return_value = None
        mock_db.add_attendance.side_effect = lambda attendance: attendance
        utc_clock = lambda: datetime(2025, 6, 10, 0, 30, tzinfo=timezone.utc)
        service = AttendanceService(db_client=mock_db, zone=ZoneInfo("Asia/Manila"), clock=utc_clock)

        marked = await service.mark("S001")

        assert marked.attendance.date == datetime(2025, 6, 10)
        assert marked.attendance.time_in == "08:30:00"

    async def test_mark_unknown_school_id(self, service_instance):
        service, mock_db = service_instance
        mock_db.get_user_by_school_id.return_value = None

        with pytest.raises(UnknownUserError, match="User not found."):
            await service.mark("S404")
        mock_db.add_attendance.assert_not_awaited()

    async def test_mark_blank_school_id(self, service_instance):
        service, _ = service_instance
        with pytest.raises(InvalidInputError):
            await service.mark("  ")

    async def test_mark_twice_same_day(self, service_instance, student):
        service, mock_db = service_instance
        mock_db.get_user_by_school_id.return_value = student
        mock_db.get_attendance.return_value = make_attendance(student, datetime(2025, 6, 10))

        with pytest.raises(AlreadyMarkedTodayError, match="Attendance already marked for today."):
            await service.mark("S001")
        mock_db.add_attendance.assert_not_awaited()

    async def test_mark_constraint_backstop(self, service_instance, student):
        service, mock_db = service_instance
        mock_db.get_user_by_school_id.return_value = student
        mock_db.get_attendance.return_value = None
        mock_db.add_attendance.side_effect = DuplicateKeyError(ATTENDANCE_DAY_CONSTRAINT)

        with pytest.raises(AlreadyMarkedTodayError):
            await service.mark("S001")

    async def test_list_for_user(self, service_instance, student):
        service, mock_db = service_instance
        records = [make_attendance(student, datetime(2025, 6, 10)), make_attendance(student, datetime(2025, 6, 9))]
        mock_db.get_user_by_school_id.return_value = student
        mock_db.get_attendances.return_value = records

        user, listed = await service.list_for_user("S001")

        assert user == student
        assert listed == records
        mock_db.get_attendances.assert_awaited_once_with("S001")

    async def test_list_for_unknown_user(self, service_instance):
        service, mock_db = service_instance
        mock_db.get_user_by_school_id.return_value = None
        with pytest.raises(UnknownUserError):
            await service.list_for_user("S404")

    async def test_list_by_section_falls_back_for_missing_users(self, service_instance, student):
        service, mock_db = service_instance
        other = make_user("S002", section="BSN-3B")
        gone = make_user("S003")
        records = [
            make_attendance(student, datetime(2025, 6, 10)),
            make_attendance(other, datetime(2025, 6, 10)),
            make_attendance(gone, datetime(2025, 6, 9)),
            make_attendance(student, datetime(2025, 6, 9)),
        ]
        mock_db.get_attendances.return_value = records
        mock_db.get_users_by_ids.return_value = [student, other]

        sections = await service.list_by_section()

        assert list(sections) == ["BSN-3A", "BSN-3B", UNKNOWN_SECTION]
        assert [e.attendance for e in sections["BSN-3A"]] == [records[0], records[3]]
        assert sections[UNKNOWN_SECTION][0].user is None


@pytest.mark.asyncio
async def test_attendance_scenario_second_scan_same_day_is_rejected(student):
    stored = []
    mock_db = AsyncMock()
    mock_db.get_user_by_school_id.return_value = student
    mock_db.get_attendance.side_effect = lambda school_id, day: next(
        (a for a in stored if a.school_id == school_id and a.date == day), None
    )
    mock_db.add_attendance.side_effect = lambda attendance: stored.append(attendance) or attendance

    clock_times = iter([datetime(2025, 6, 10, 8, 0, 0), datetime(2025, 6, 10, 17, 45, 12)])
    service = AttendanceService(db_client=mock_db, clock=lambda: next(clock_times))

    first = await service.mark("S001")
    assert first.attendance.date == datetime(2025, 6, 10)
    assert first.attendance.time_in == "08:00:00"

    with pytest.raises(AlreadyMarkedTodayError):
        await service.mark("S001")
    assert len(stored) == 1
