import logging
from typing import Any, Dict, List, Optional
from uuid import UUID
import asyncpg
from datetime import datetime
from ..models.db_models import User, Group, Duty, Attendance

logger = logging.getLogger(__name__)

# Named unique constraints, used by the services to tell conflicts apart.
USER_SCHOOL_ID_CONSTRAINT = "users_school_id_key"
USER_USERNAME_CONSTRAINT = "users_username_key"
USER_EMAIL_CONSTRAINT = "users_email_key"
GROUP_NAME_CONSTRAINT = "duty_groups_name_key"
GROUP_MEMBER_CONSTRAINT = "group_members_user_key"
DUTY_DAY_CONSTRAINT = "duties_group_day_key"
ATTENDANCE_DAY_CONSTRAINT = "attendances_school_day_key"

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS Users (
    id UUID PRIMARY KEY,
    school_id TEXT NOT NULL CONSTRAINT {USER_SCHOOL_ID_CONSTRAINT} UNIQUE,
    username TEXT NOT NULL CONSTRAINT {USER_USERNAME_CONSTRAINT} UNIQUE,
    email TEXT NOT NULL CONSTRAINT {USER_EMAIL_CONSTRAINT} UNIQUE,
    password_hash TEXT NOT NULL,
    name TEXT,
    section TEXT,
    course TEXT,
    year INTEGER,
    department TEXT,
    role TEXT NOT NULL DEFAULT 'user',
    profile_image TEXT NOT NULL DEFAULT '',
    qr_code TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS DutyGroups (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL CONSTRAINT {GROUP_NAME_CONSTRAINT} UNIQUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- user_id is the primary key: a user can be in at most one group.
CREATE TABLE IF NOT EXISTS GroupMembers (
    user_id UUID CONSTRAINT {GROUP_MEMBER_CONSTRAINT} PRIMARY KEY REFERENCES Users(id) ON DELETE CASCADE,
    group_id UUID NOT NULL REFERENCES DutyGroups(id) ON DELETE CASCADE,
    added_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- No foreign key on group_id: deleting a group keeps its duties.
CREATE TABLE IF NOT EXISTS Duties (
    id UUID PRIMARY KEY,
    group_id UUID NOT NULL,
    duty_date TIMESTAMP NOT NULL,
    place TEXT NOT NULL,
    time_range TEXT NOT NULL,
    clinical_instructor TEXT NOT NULL,
    area TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT {DUTY_DAY_CONSTRAINT} UNIQUE (group_id, duty_date)
);
CREATE INDEX IF NOT EXISTS duties_duty_date_idx ON Duties (duty_date);

-- No foreign key on user_id: deleting a user keeps their history.
CREATE TABLE IF NOT EXISTS Attendances (
    id UUID PRIMARY KEY,
    user_id UUID NOT NULL,
    school_id TEXT NOT NULL,
    attendance_date TIMESTAMP NOT NULL,
    time_in TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT {ATTENDANCE_DAY_CONSTRAINT} UNIQUE (school_id, attendance_date)
);
"""

USER_SELECT = """
    SELECT u.*, gm.group_id
    FROM Users u
    LEFT JOIN GroupMembers gm ON gm.user_id = u.id
"""

GROUP_SELECT = """
    SELECT g.id, g.name, g.created_at,
           COALESCE(
               array_agg(gm.user_id ORDER BY gm.added_at) FILTER (WHERE gm.user_id IS NOT NULL),
               '{}'::uuid[]
           ) AS member_ids
    FROM DutyGroups g
    LEFT JOIN GroupMembers gm ON gm.group_id = g.id
"""

DUTY_SELECT = """
    SELECT d.id, d.group_id, d.duty_date, d.place, d.time_range, d.clinical_instructor,
           d.area, d.created_at, g.name AS group_name
    FROM Duties d
    LEFT JOIN DutyGroups g ON g.id = d.group_id
"""

ATTENDANCE_SELECT = """
    SELECT id, user_id, school_id, attendance_date AS date, time_in, created_at
    FROM Attendances
"""

# Columns a partial update may touch; anything else is a programming error.
USER_UPDATABLE = {"school_id", "username", "email", "password_hash", "name", "section",
                  "course", "year", "department", "role", "profile_image", "qr_code"}
DUTY_UPDATABLE = {"duty_date", "place", "time_range", "clinical_instructor", "area"}


class DuplicateKeyError(Exception):
    """A write hit one of the named unique constraints."""
    def __init__(self, constraint: Optional[str]):
        super().__init__(f"Unique constraint violated: {constraint}")
        self.constraint = constraint


def _set_clause(fields: Dict[str, Any], allowed: set, start: int = 2) -> str:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unsupported columns: {sorted(unknown)}")
    return ", ".join(f"{column} = ${index}" for index, column in enumerate(fields, start=start))


class AsyncPostgresClient:
    """
    PostgreSQL client that owns every store operation.
    """
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create_schema(self):
        """Creates the tables and constraints when they do not exist yet."""
        async with self._pool.acquire() as connection:
            await connection.execute(SCHEMA)
        logger.info("Database schema is ready.")

    # ===== Users =====

    async def add_user(self, user: User) -> User:
        query = """
            INSERT INTO Users (id, school_id, username, email, password_hash, name, section,
                               course, year, department, role, profile_image, qr_code)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            try:
                record = await connection.fetchrow(
                    query, user.id, user.school_id, user.username, user.email, user.password_hash,
                    user.name, user.section, user.course, user.year, user.department, user.role,
                    user.profile_image, user.qr_code
                )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
            return User(**record)

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        query = USER_SELECT + " WHERE u.id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id)
            return User(**record) if record else None

    async def get_user_by_school_id(self, school_id: str) -> Optional[User]:
        query = USER_SELECT + " WHERE u.school_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, school_id)
            return User(**record) if record else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        query = USER_SELECT + " WHERE u.email = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, email)
            return User(**record) if record else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        query = USER_SELECT + " WHERE u.username = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, username)
            return User(**record) if record else None

    async def get_users_by_school_ids(self, school_ids: List[str]) -> List[User]:
        if not school_ids:
            return []
        query = USER_SELECT + " WHERE u.school_id = ANY($1::text[]);"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, school_ids)
            return [User(**record) for record in records]

    async def get_users_by_ids(self, user_ids: List[UUID]) -> List[User]:
        if not user_ids:
            return []
        query = USER_SELECT + " WHERE u.id = ANY($1::uuid[]);"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, user_ids)
            return [User(**record) for record in records]

    async def search_users(self, search: Optional[str] = None, role: Optional[str] = None) -> List[User]:
        """Case-insensitive substring search over username, email and school id."""
        query = USER_SELECT + """
            WHERE ($1::text IS NULL OR u.username ILIKE '%' || $1 || '%'
                                   OR u.email ILIKE '%' || $1 || '%'
                                   OR u.school_id ILIKE '%' || $1 || '%')
              AND ($2::text IS NULL OR u.role = $2)
            ORDER BY u.created_at DESC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, search, role)
            return [User(**record) for record in records]

    async def update_user(self, user_id: UUID, fields: Dict[str, Any]) -> Optional[User]:
        """Applies a partial update and returns the fresh row, or None if the user is gone."""
        if not fields:
            return await self.get_user_by_id(user_id)
        query = f"UPDATE Users SET {_set_clause(fields, USER_UPDATABLE)} WHERE id = $1 RETURNING id;"
        async with self._pool.acquire() as connection:
            try:
                updated = await connection.fetchval(query, user_id, *fields.values())
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
        return await self.get_user_by_id(user_id) if updated else None

    async def delete_user(self, user_id: UUID) -> bool:
        async with self._pool.acquire() as connection:
            deleted = await connection.fetchval("DELETE FROM Users WHERE id = $1 RETURNING id;", user_id)
            return deleted is not None

    # ===== Groups =====

    async def add_group(self, group_id: UUID, name: str, member_ids: List[UUID]) -> Group:
        """Inserts the group and its members in one transaction."""
        async with self._pool.acquire() as connection:
            try:
                async with connection.transaction():
                    await connection.execute(
                        "INSERT INTO DutyGroups (id, name) VALUES ($1, $2);", group_id, name
                    )
                    if member_ids:
                        await connection.executemany(
                            "INSERT INTO GroupMembers (user_id, group_id) VALUES ($1, $2);",
                            [(member_id, group_id) for member_id in member_ids]
                        )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
        return await self.get_group(group_id)

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        query = GROUP_SELECT + " WHERE g.id = $1 GROUP BY g.id;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, group_id)
            return Group(**record) if record else None

    async def get_group_by_name(self, name: str, exclude_id: Optional[UUID] = None) -> Optional[Group]:
        query = GROUP_SELECT + " WHERE g.name = $1 AND ($2::uuid IS NULL OR g.id <> $2) GROUP BY g.id;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, name, exclude_id)
            return Group(**record) if record else None

    async def get_group_of_user(self, user_id: UUID) -> Optional[Group]:
        query = GROUP_SELECT + """
            WHERE g.id = (SELECT group_id FROM GroupMembers WHERE user_id = $1)
            GROUP BY g.id;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id)
            return Group(**record) if record else None

    async def get_groups_with_any_member(self, user_ids: List[UUID]) -> List[Group]:
        if not user_ids:
            return []
        query = GROUP_SELECT + """
            WHERE g.id IN (SELECT group_id FROM GroupMembers WHERE user_id = ANY($1::uuid[]))
            GROUP BY g.id;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, user_ids)
            return [Group(**record) for record in records]

    async def list_groups(self, search: Optional[str] = None) -> List[Group]:
        """Newest first; optional case-insensitive substring filter on the name."""
        query = GROUP_SELECT + """
            WHERE ($1::text IS NULL OR g.name ILIKE '%' || $1 || '%')
            GROUP BY g.id
            ORDER BY g.created_at DESC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, search)
            return [Group(**record) for record in records]

    async def get_group_members(self, group_id: UUID) -> List[User]:
        query = USER_SELECT + " WHERE gm.group_id = $1 ORDER BY gm.added_at;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, group_id)
            return [User(**record) for record in records]

    async def add_group_member(self, group_id: UUID, user_id: UUID):
        async with self._pool.acquire() as connection:
            try:
                await connection.execute(
                    "INSERT INTO GroupMembers (user_id, group_id) VALUES ($1, $2);", user_id, group_id
                )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e

    async def remove_group_member(self, group_id: UUID, user_id: UUID) -> bool:
        query = "DELETE FROM GroupMembers WHERE group_id = $1 AND user_id = $2 RETURNING user_id;"
        async with self._pool.acquire() as connection:
            removed = await connection.fetchval(query, group_id, user_id)
            return removed is not None

    async def rename_group(self, group_id: UUID, name: str) -> Optional[Group]:
        async with self._pool.acquire() as connection:
            try:
                updated = await connection.fetchval(
                    "UPDATE DutyGroups SET name = $2 WHERE id = $1 RETURNING id;", group_id, name
                )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
        return await self.get_group(group_id) if updated else None

    async def delete_group(self, group_id: UUID) -> bool:
        """Memberships go with the group; duties are left in place."""
        async with self._pool.acquire() as connection:
            deleted = await connection.fetchval("DELETE FROM DutyGroups WHERE id = $1 RETURNING id;", group_id)
            return deleted is not None

    # ===== Duties =====

    async def add_duty(self, duty: Duty) -> Duty:
        query = """
            INSERT INTO Duties (id, group_id, duty_date, place, time_range, clinical_instructor, area)
            VALUES ($1, $2, $3, $4, $5, $6, $7);
        """
        async with self._pool.acquire() as connection:
            try:
                await connection.execute(
                    query, duty.id, duty.group_id, duty.duty_date, duty.place,
                    duty.time_range, duty.clinical_instructor, duty.area
                )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
        return await self.get_duty(duty.id)

    async def get_duty(self, duty_id: UUID) -> Optional[Duty]:
        query = DUTY_SELECT + " WHERE d.id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, duty_id)
            return Duty(**record) if record else None

    async def find_group_duty_between(self, group_id: UUID, start: datetime, end: datetime) -> Optional[Duty]:
        """First duty of the group whose date falls in the inclusive [start, end] range."""
        query = DUTY_SELECT + " WHERE d.group_id = $1 AND d.duty_date BETWEEN $2 AND $3 LIMIT 1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, group_id, start, end)
            return Duty(**record) if record else None

    async def get_duties_between(self, start: datetime, end: datetime) -> List[Duty]:
        query = DUTY_SELECT + " WHERE d.duty_date BETWEEN $1 AND $2 ORDER BY d.duty_date;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, start, end)
            return [Duty(**record) for record in records]

    async def get_duties(self, group_id: Optional[UUID] = None) -> List[Duty]:
        query = DUTY_SELECT + " WHERE ($1::uuid IS NULL OR d.group_id = $1) ORDER BY d.duty_date ASC;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, group_id)
            return [Duty(**record) for record in records]

    async def update_duty(self, duty_id: UUID, fields: Dict[str, Any]) -> Optional[Duty]:
        if not fields:
            return await self.get_duty(duty_id)
        query = f"UPDATE Duties SET {_set_clause(fields, DUTY_UPDATABLE)} WHERE id = $1 RETURNING id;"
        async with self._pool.acquire() as connection:
            try:
                updated = await connection.fetchval(query, duty_id, *fields.values())
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
        return await self.get_duty(duty_id) if updated else None

    async def delete_duty(self, duty_id: UUID) -> bool:
        async with self._pool.acquire() as connection:
            deleted = await connection.fetchval("DELETE FROM Duties WHERE id = $1 RETURNING id;", duty_id)
            return deleted is not None

    # ===== Attendances =====

    async def add_attendance(self, attendance: Attendance) -> Attendance:
        query = """
            INSERT INTO Attendances (id, user_id, school_id, attendance_date, time_in)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id, user_id, school_id, attendance_date AS date, time_in, created_at;
        """
        async with self._pool.acquire() as connection:
            try:
                record = await connection.fetchrow(
                    query, attendance.id, attendance.user_id, attendance.school_id,
                    attendance.date, attendance.time_in
                )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateKeyError(e.constraint_name) from e
            return Attendance(**record)

    async def get_attendance(self, school_id: str, day: datetime) -> Optional[Attendance]:
        query = ATTENDANCE_SELECT + " WHERE school_id = $1 AND attendance_date = $2;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, school_id, day)
            return Attendance(**record) if record else None

    async def get_attendances(self, school_id: Optional[str] = None) -> List[Attendance]:
        """Latest day first."""
        query = ATTENDANCE_SELECT + """
            WHERE ($1::text IS NULL OR school_id = $1)
            ORDER BY attendance_date DESC, time_in DESC;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, school_id)
            return [Attendance(**record) for record in records]
