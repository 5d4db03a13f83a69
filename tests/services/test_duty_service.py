import pytest
import pytest_asyncio
import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from mcare.backend.services.duty_service import DutyPatch, DutyService
from mcare.backend.services.errors import (
    DuplicateDutyForDayError,
    InvalidInputError,
    NotFoundError,
    UnknownGroupError,
)
from mcare.backend.db.db_client import DuplicateKeyError, DUTY_DAY_CONSTRAINT
from mcare.backend.tools.mailer import MailSender, Notifier
from tests.factories import make_user, make_group, make_duty

DUTY_DAY = datetime(2025, 6, 10)


# --- Fixtures ---

@pytest.fixture
def group_with_members():
    members = [make_user("S001", "Ana Cruz"), make_user("S002", "Ben Lim")]
    return make_group("BSN-3A", members), members


@pytest_asyncio.fixture
async def service_instance():
    """DutyService with a mocked database client and notifier."""
    mock_db_client = AsyncMock()
    mock_notifier = AsyncMock()
    service = DutyService(db_client=mock_db_client, notifier=mock_notifier)
    return service, mock_db_client, mock_notifier


def _duty_args(group_id, duty_date=DUTY_DAY):
    return dict(
        group_id=group_id,
        duty_date=duty_date,
        place="City General Hospital",
        time_range="08:00 AM - 04:00 PM",
        clinical_instructor="Prof. Reyes",
        area="Pediatric Ward",
    )


@pytest.mark.asyncio
class TestDutyService:
    # --- create_duty ---

    async def test_create_duty_notifies_current_members(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, members = group_with_members
        mock_db.get_group.return_value = group
        mock_db.find_group_duty_between.return_value = None
        mock_db.add_duty.side_effect = lambda duty: duty
        mock_db.get_group_members.return_value = members

        assignment = await service.create_duty(**_duty_args(group.id, datetime(2025, 6, 10, 14, 30)))

        assert assignment.duty.duty_date == DUTY_DAY
        assert assignment.members == members
        start, end = mock_db.find_group_duty_between.await_args.args[1:]
        assert start == DUTY_DAY
        assert end == datetime(2025, 6, 10, 23, 59, 59, 999999)
        mock_notifier.notify_duty_assigned.assert_awaited_once_with(members, assignment.duty, "BSN-3A")

    async def test_create_duty_unknown_group(self, service_instance):
        service, mock_db, mock_notifier = service_instance
        mock_db.get_group.return_value = None

        with pytest.raises(UnknownGroupError, match="Group not found."):
            await service.create_duty(**_duty_args(uuid.uuid4()))
        mock_db.add_duty.assert_not_awaited()
        mock_notifier.notify_duty_assigned.assert_not_awaited()

    async def test_create_duty_same_day_rejected(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, _ = group_with_members
        mock_db.get_group.return_value = group
        mock_db.find_group_duty_between.return_value = make_duty(group, DUTY_DAY)

        with pytest.raises(DuplicateDutyForDayError):
            await service.create_duty(**_duty_args(group.id, datetime(2025, 6, 10, 23, 0)))
        mock_db.add_duty.assert_not_awaited()

    async def test_create_duty_constraint_backstop(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, _ = group_with_members
        mock_db.get_group.return_value = group
        mock_db.find_group_duty_between.return_value = None
        mock_db.add_duty.side_effect = DuplicateKeyError(DUTY_DAY_CONSTRAINT)

        with pytest.raises(DuplicateDutyForDayError):
            await service.create_duty(**_duty_args(group.id))
        mock_notifier.notify_duty_assigned.assert_not_awaited()

    async def test_create_duty_requires_text_fields(self, service_instance):
        service, mock_db, _ = service_instance
        args = _duty_args(uuid.uuid4())
        args["area"] = "   "
        with pytest.raises(InvalidInputError):
            await service.create_duty(**args)
        mock_db.get_group.assert_not_awaited()

    async def test_create_duty_survives_notifier_failure(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, members = group_with_members
        mock_db.get_group.return_value = group
        mock_db.find_group_duty_between.return_value = None
        mock_db.add_duty.side_effect = lambda duty: duty
        mock_db.get_group_members.return_value = members
        mock_notifier.notify_duty_assigned.side_effect = RuntimeError("mail down")

        assignment = await service.create_duty(**_duty_args(group.id))

        assert assignment.duty.group_id == group.id

    async def test_create_duty_uses_configured_zone(self, group_with_members):
        group, _ = group_with_members
        mock_db = AsyncMock()
        mock_db.get_group.return_value = group
        mock_db.find_group_duty_between.return_value = None
        mock_db.add_duty.side_effect = lambda duty: duty
        mock_db.get_group_members.return_value = []
        service = DutyService(db_client=mock_db, notifier=AsyncMock(), zone=ZoneInfo("Asia/Manila"))

        # 20:00 UTC on the 9th is already the 10th in Manila (UTC+8).
        assignment = await service.create_duty(**_duty_args(group.id, datetime(2025, 6, 9, 20, 0, tzinfo=timezone.utc)))

        assert assignment.duty.duty_date == DUTY_DAY

    # --- update_duty ---

    async def test_update_duty_merges_and_notifies(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, members = group_with_members
        duty = make_duty(group, DUTY_DAY)
        updated = duty.model_copy(update={"place": "St. Luke's", "duty_date": datetime(2025, 6, 12)})
        mock_db.get_duty.return_value = duty
        mock_db.update_duty.return_value = updated
        mock_db.get_group.return_value = group
        mock_db.get_group_members.return_value = members

        patch = DutyPatch(duty_date=date(2025, 6, 12), place=" St. Luke's ", area="  ", time_range=None)
        assignment = await service.update_duty(duty.id, patch)

        mock_db.update_duty.assert_awaited_once_with(
            duty.id, {"duty_date": datetime(2025, 6, 12), "place": "St. Luke's"}
        )
        assert assignment.duty == updated
        mock_notifier.notify_duty_updated.assert_awaited_once_with(members, updated, "BSN-3A")

    async def test_update_duty_not_found(self, service_instance):
        service, mock_db, _ = service_instance
        mock_db.get_duty.return_value = None
        with pytest.raises(NotFoundError, match="Duty not found."):
            await service.update_duty(uuid.uuid4(), DutyPatch(place="X"))

    async def test_update_duty_into_taken_day(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, _ = group_with_members
        mock_db.get_duty.return_value = make_duty(group, DUTY_DAY)
        mock_db.update_duty.side_effect = DuplicateKeyError(DUTY_DAY_CONSTRAINT)

        with pytest.raises(DuplicateDutyForDayError):
            await service.update_duty(uuid.uuid4(), DutyPatch(duty_date=datetime(2025, 6, 11, 9, 0)))
        mock_db.find_group_duty_between.assert_not_awaited()
        mock_notifier.notify_duty_updated.assert_not_awaited()

    async def test_update_duty_of_deleted_group(self, service_instance, group_with_members):
        service, mock_db, mock_notifier = service_instance
        group, _ = group_with_members
        duty = make_duty(group, DUTY_DAY, group_name=None)
        mock_db.get_duty.return_value = duty
        mock_db.update_duty.return_value = duty
        mock_db.get_group.return_value = None

        assignment = await service.update_duty(duty.id, DutyPatch(area="ER"))

        assert assignment.members == []
        mock_notifier.notify_duty_updated.assert_not_awaited()

    # --- delete / list ---

    async def test_delete_duty_missing(self, service_instance):
        service, mock_db, mock_notifier = service_instance
        mock_db.delete_duty.return_value = False
        with pytest.raises(NotFoundError):
            await service.delete_duty(uuid.uuid4())

    async def test_list_duties_for_user_without_group(self, service_instance):
        service, mock_db, _ = service_instance
        mock_db.get_user_by_id.return_value = make_user("S009")

        with pytest.raises(NotFoundError, match="does not belong to any group"):
            await service.list_duties_for_user(uuid.uuid4())

    async def test_list_duties_for_user(self, service_instance, group_with_members):
        service, mock_db, _ = service_instance
        group, members = group_with_members
        user = members[0].model_copy(update={"group_id": group.id})
        duties = [make_duty(group, DUTY_DAY)]
        mock_db.get_user_by_id.return_value = user
        mock_db.get_group.return_value = group
        mock_db.get_duties.return_value = duties

        result = await service.list_duties_for_user(user.id)

        assert result == (user, group, duties)
        mock_db.get_duties.assert_awaited_once_with(group.id)

    async def test_list_group_schedules(self, service_instance, group_with_members):
        service, mock_db, _ = service_instance
        group, members = group_with_members
        empty = make_group("BSN-3B")
        duty = make_duty(group, DUTY_DAY)
        orphan = make_duty(make_group("Deleted"), DUTY_DAY)
        mock_db.list_groups.return_value = [empty, group]
        mock_db.get_duties.return_value = [duty, orphan]
        mock_db.get_users_by_ids.return_value = members

        schedules = await service.list_group_schedules()

        assert [s.group.name for s in schedules] == ["BSN-3B", "BSN-3A"]
        assert schedules[0].duties == [] and schedules[0].members == []
        assert schedules[1].duties == [duty]
        assert schedules[1].members == members


@pytest.mark.asyncio
async def test_duty_scenario_emails_each_member_then_rejects_same_day(group_with_members):
    group, members = group_with_members
    sender = MagicMock(spec=MailSender)
    sender.send = AsyncMock(return_value=True)
    notifier = Notifier(sender, batch=False)

    stored = []
    mock_db = AsyncMock()
    mock_db.get_group.return_value = group
    mock_db.find_group_duty_between.side_effect = lambda group_id, start, end: next(
        (d for d in stored if d.group_id == group_id and start <= d.duty_date <= end), None
    )
    mock_db.add_duty.side_effect = lambda duty: stored.append(duty) or duty
    mock_db.get_group_members.return_value = members
    service = DutyService(db_client=mock_db, notifier=notifier)

    await service.create_duty(**_duty_args(group.id, DUTY_DAY))

    assert sender.send.await_count == 2
    recipients = [call.args[0] for call in sender.send.await_args_list]
    assert recipients == ["s001@mcare.edu", "s002@mcare.edu"]
    assert sender.send.await_args.args[1] == "New Duty Assigned for BSN-3A on Tuesday, June 10, 2025"

    with pytest.raises(DuplicateDutyForDayError):
        await service.create_duty(**_duty_args(group.id, datetime(2025, 6, 10, 16, 0)))
    assert len(stored) == 1
