# mcare/backend/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import redis.asyncio as redis
import asyncpg
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler as Scheduler
from apscheduler.triggers.cron import CronTrigger
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import admin, attendance, auth, student
from .db.db_client import AsyncPostgresClient
from .modules.calendar_days import get_zone, parse_reminder_time
from .tasks.cron import send_duty_reminders_task
from .tools.mailer import build_notifier
from .api.utilities.limiter import limiter

logger = logging.getLogger(__name__)


def build_scheduler(db_client: AsyncPostgresClient, notifier, zone=None) -> Scheduler:
    """Daily reminder job at REMINDER_TIME; never two runs at once, no catch-up."""
    hour, minute = parse_reminder_time(settings.REMINDER_TIME)
    scheduler = Scheduler(timezone=zone) if zone else Scheduler()
    scheduler.add_job(
        send_duty_reminders_task,
        CronTrigger(hour=hour, minute=minute, timezone=zone) if zone else CronTrigger(hour=hour, minute=minute),
        kwargs={"db_client": db_client, "notifier": notifier, "zone": zone},
        id="duty_reminders",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates the shared pools, the mail client and the scheduler on startup
    and releases them on shutdown.
    """
    setup_logging()
    app.state.limiter = limiter
    logger.info("Application starting...")

    zone = get_zone(settings.TIMEZONE)
    postgres_pool = await asyncpg.create_pool(dsn=settings.DATABASE_URL, min_size=2, max_size=20)
    redis_pool = redis.ConnectionPool.from_url(settings.APPLICATION_REDIS_URL, decode_responses=True)
    http_client = httpx.AsyncClient(timeout=15.0)

    db_client = AsyncPostgresClient(pool=postgres_pool)
    await db_client.create_schema()
    notifier = build_notifier(http_client)

    app.state.postgres_pool = postgres_pool
    app.state.redis_pool = redis_pool
    app.state.http_client = http_client
    app.state.notifier = notifier
    logger.info("PostgreSQL and Redis pools created.")

    if not notifier.sender.is_configured:
        logger.warning("MAIL_API_URL or MAIL_API_KEY is not set; emails will be skipped.")

    scheduler = build_scheduler(db_client, notifier, zone)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info(f"Duty reminder job scheduled daily at {settings.REMINDER_TIME} ({settings.TIMEZONE or 'local time'}).")

    yield

    logger.info("Application shutting down...")
    scheduler.shutdown(wait=False)
    await http_client.aclose()
    await postgres_pool.close()
    await redis_pool.disconnect()
    logger.info("Scheduler, mail client and connection pools closed.")


app = FastAPI(
    title="MCare API",
    description="Duty scheduling, group management and QR attendance for clinical students",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(student.router, prefix="/api/v1")
app.include_router(attendance.router, prefix="/api/v1")


@app.get("/health", tags=["System"])
def health_check():
    """Liveness probe."""
    return {"status": "ok", "message": "MCare API is running."}
