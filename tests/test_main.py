from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from mcare.backend.main import app, build_scheduler
from mcare.backend.config.config import settings
from mcare.backend.tasks.cron import send_duty_reminders_task


def test_health_check():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_reminder_job_runs_daily_at_configured_time(monkeypatch):
    monkeypatch.setattr(settings, "REMINDER_TIME", "07:30")
    zone = ZoneInfo("Asia/Manila")
    db_client, notifier = AsyncMock(), MagicMock()

    scheduler = build_scheduler(db_client, notifier, zone)

    job = scheduler.get_job("duty_reminders")
    assert job.func is send_duty_reminders_task
    assert job.kwargs == {"db_client": db_client, "notifier": notifier, "zone": zone}
    assert job.max_instances == 1
    assert job.coalesce is True
    fields = {field.name: str(field) for field in job.trigger.fields}
    assert fields["hour"] == "7"
    assert fields["minute"] == "30"
