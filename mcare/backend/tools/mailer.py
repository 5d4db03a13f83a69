import logging
from datetime import datetime, date
from typing import Iterable, List, Optional, Sequence, Union

import httpx

from ..config.config import settings
from ..models.db_models import User, Duty
from .email_templates import render

logger = logging.getLogger(__name__)


class MailSender:
    """
    Thin client for the transactional email HTTP API.

    `send` is best effort: it never raises, it logs and returns False when the
    message could not be handed over.
    """
    def __init__(self, http_client: httpx.AsyncClient, api_url: Optional[str], api_key: Optional[str], sender: str):
        self._http_client = http_client
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender

    @property
    def is_configured(self) -> bool:
        return bool(self._api_url and self._api_key)

    async def send(self, to: Union[str, List[str]], subject: str, html: str) -> bool:
        if not self.is_configured:
            logger.warning(f"Mail API is not configured, dropping email '{subject}'.")
            return False

        payload = {
            "from": self._sender,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html,
        }
        try:
            response = await self._http_client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Mail API rejected '{subject}' to {payload['to']}: {e.response.status_code} - {e.response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Could not reach mail API for '{subject}' to {payload['to']}: {e}")
            return False

        logger.info(f"Email '{subject}' sent to {payload['to']}.")
        return True


def format_duty_date(value: Union[datetime, date]) -> str:
    """'Tuesday, June 10, 2025'"""
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


class Notifier:
    """
    Renders the MCare emails and hands them to the MailSender.

    With `batch=True` one message goes to all recipients of a duty at once;
    otherwise every member gets a personal copy.
    """
    def __init__(self, sender: MailSender, batch: bool = False):
        self.sender = sender
        self.batch = batch

    async def _send_duty_email(self, template: str, subject: str, recipients: Sequence[User], duty: Duty, group_name: str) -> int:
        """Returns how many messages were accepted by the mail API."""
        recipients = [user for user in recipients if user.email]
        if not recipients:
            return 0

        context = {
            "duty": duty,
            "group_name": group_name,
            "duty_date": format_duty_date(duty.duty_date),
            "year": datetime.now().year,
        }

        if self.batch:
            html = render(template, recipient_name=group_name, **context)
            sent = await self.sender.send([user.email for user in recipients], subject, html)
            return len(recipients) if sent else 0

        accepted = 0
        for user in recipients:
            try:
                html = render(template, recipient_name=user.display_name, **context)
            except Exception as e:
                logger.error(f"Could not render '{template}' for {user.email}: {e}", exc_info=True)
                continue
            if await self.sender.send(user.email, subject, html):
                accepted += 1
        return accepted

    async def notify_duty_assigned(self, recipients: Iterable[User], duty: Duty, group_name: str) -> int:
        subject = f"New Duty Assigned for {group_name} on {format_duty_date(duty.duty_date)}"
        return await self._send_duty_email("duty_assigned.html", subject, list(recipients), duty, group_name)

    async def notify_duty_updated(self, recipients: Iterable[User], duty: Duty, group_name: str) -> int:
        subject = f"Duty Updated for {group_name} on {format_duty_date(duty.duty_date)}"
        return await self._send_duty_email("duty_updated.html", subject, list(recipients), duty, group_name)

    async def send_duty_reminder(self, recipients: Iterable[User], duty: Duty, group_name: str) -> int:
        subject = f"Reminder: Duty Tomorrow ({group_name})"
        return await self._send_duty_email("duty_reminder.html", subject, list(recipients), duty, group_name)

    async def send_welcome(self, user: User) -> bool:
        html = render("welcome.html", recipient_name=user.display_name, year=datetime.now().year)
        return await self.sender.send(user.email, f"Welcome to MCare, {user.display_name}!", html)

    async def send_password_changed(self, user: User) -> bool:
        changed_at = datetime.now()
        html = render(
            "password_changed.html",
            recipient_name=user.display_name,
            changed_at=f"{changed_at:%B} {changed_at.day}, {changed_at.year} at {changed_at:%I:%M %p}",
            year=changed_at.year,
        )
        return await self.sender.send(user.email, "Your MCare Account Password Has Been Changed", html)


def build_notifier(http_client: httpx.AsyncClient) -> Notifier:
    sender = MailSender(
        http_client=http_client,
        api_url=settings.MAIL_API_URL,
        api_key=settings.MAIL_API_KEY,
        sender=settings.MAIL_FROM,
    )
    return Notifier(sender, batch=settings.MAIL_BATCH_SEND)
