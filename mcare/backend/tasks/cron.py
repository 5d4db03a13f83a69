import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from ..db.db_client import AsyncPostgresClient
from ..modules.calendar_days import now_local, tomorrow_bounds
from ..tools.mailer import Notifier

logger = logging.getLogger(__name__)


async def send_duty_reminders_task(
    db_client: AsyncPostgresClient,
    notifier: Notifier,
    zone: Optional[ZoneInfo] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Reminds every member of every group that has a duty tomorrow.
    Each duty is handled on its own: a failure is logged and the loop moves on.
    Returns the number of duties whose members were reminded.
    """
    now = now or now_local(zone)
    start, end = tomorrow_bounds(now)
    logger.info(f"Running send_duty_reminders_task for {start:%Y-%m-%d}...")

    try:
        duties = await db_client.get_duties_between(start, end)
    except Exception as e:
        logger.error(f"Could not load tomorrow's duties: {e}", exc_info=True)
        return 0

    reminded = 0
    for duty in duties:
        try:
            group = await db_client.get_group(duty.group_id)
            if not group:
                logger.info(f"Skipping duty {duty.id}: its group {duty.group_id} no longer exists.")
                continue

            members = await db_client.get_group_members(group.id)
            if not members:
                logger.info(f"Skipping duty {duty.id}: group '{group.name}' has no members.")
                continue

            await notifier.send_duty_reminder(members, duty, group.name)
            reminded += 1
            logger.info(f"Reminder sent for duty {duty.id} to {len(members)} member(s) of '{group.name}'.")
        except Exception as e:
            logger.error(f"Failed to send reminder for duty {duty.id}: {e}", exc_info=True)

    logger.info(f"send_duty_reminders_task finished: {reminded}/{len(duties)} duties reminded.")
    return reminded
