#mcare/backend/api/dependencies.py
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Request, Depends
import redis.asyncio as redis
import asyncpg

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..db.db_client import AsyncPostgresClient
from ..modules.calendar_days import get_zone
from ..tools.mailer import Notifier
from ..services.user_service import UserService
from ..services.group_service import GroupService
from ..services.duty_service import DutyService
from ..services.attendance_service import AttendanceService


def get_redis_pool(request: Request) -> redis.ConnectionPool:
    """Redis pool created in the application lifespan."""
    return request.app.state.redis_pool


def get_postgres_pool(request: Request) -> asyncpg.Pool:
    """PostgreSQL pool created in the application lifespan."""
    return request.app.state.postgres_pool


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


@lru_cache
def get_deployment_zone() -> Optional[ZoneInfo]:
    return get_zone(settings.TIMEZONE)


def get_db_client(postgres_pool: asyncpg.Pool = Depends(get_postgres_pool)) -> AsyncPostgresClient:
    return AsyncPostgresClient(pool=postgres_pool)


def get_redis_client(redis_pool: redis.ConnectionPool = Depends(get_redis_pool)) -> RedisClient:
    return RedisClient(pool=redis_pool)


# Every request gets fresh service objects built on the shared pools.

def get_user_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    notifier: Notifier = Depends(get_notifier)
) -> UserService:
    return UserService(db_client=db_client, notifier=notifier)


def get_group_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> GroupService:
    return GroupService(db_client=db_client)


def get_duty_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    notifier: Notifier = Depends(get_notifier),
    zone: Optional[ZoneInfo] = Depends(get_deployment_zone)
) -> DutyService:
    return DutyService(db_client=db_client, notifier=notifier, zone=zone)


def get_attendance_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    zone: Optional[ZoneInfo] = Depends(get_deployment_zone)
) -> AttendanceService:
    return AttendanceService(db_client=db_client, zone=zone)
