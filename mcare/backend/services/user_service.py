import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from email_validator import EmailNotValidError, validate_email

from ..db.db_client import (
    AsyncPostgresClient,
    DuplicateKeyError,
    USER_EMAIL_CONSTRAINT,
    USER_SCHOOL_ID_CONSTRAINT,
    USER_USERNAME_CONSTRAINT,
)
from ..models.db_models import Group, ROLES, User
from ..tools.mailer import Notifier
from ..tools.passwords import WEAK_PASSWORD_MESSAGE, hash_password, is_strong_password, verify_password
from ..tools.qr_generator import QRGenerationError, generate_qr_code
from .errors import (
    AuthenticationError,
    DuplicateAccountError,
    InvalidInputError,
    NotFoundError,
    ServiceError,
)

logger = logging.getLogger(__name__)

AVATAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"

# Roles an admin may hand out through the update screen.
ASSIGNABLE_ROLES = ("user", "admin")

_DUPLICATE_MESSAGES = {
    USER_EMAIL_CONSTRAINT: "Email already exists.",
    USER_USERNAME_CONSTRAINT: "Username already exists.",
    USER_SCHOOL_ID_CONSTRAINT: "School ID already exists.",
}


def _duplicate_account(e: DuplicateKeyError) -> DuplicateAccountError:
    return DuplicateAccountError(_DUPLICATE_MESSAGES.get(e.constraint, "Account already exists."))


def _non_blank(**fields: Optional[str]) -> Dict[str, str]:
    """Keeps only the fields that carry text, stripped."""
    return {key: value.strip() for key, value in fields.items() if value and value.strip()}


def _check_username(username: str):
    if re.search(r"\s", username):
        raise InvalidInputError("Username can't have spaces.")
    if len(username) < 3:
        raise InvalidInputError("Username must be at least 3 characters.")


class UserService:
    """
    Accounts: registration, credentials and profile maintenance.
    Sessions and tokens are handled by the auth router.
    """
    def __init__(self, db_client: AsyncPostgresClient, notifier: Optional[Notifier] = None):
        self.db_client = db_client
        self.notifier = notifier

    async def _get_user_or_raise(self, user_id: UUID) -> User:
        user = await self.db_client.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found.")
        return user

    async def _update(self, user_id: UUID, fields: Dict[str, Any]) -> User:
        try:
            user = await self.db_client.update_user(user_id, fields)
        except DuplicateKeyError as e:
            raise _duplicate_account(e) from e
        if not user:
            raise NotFoundError("User not found.")
        return user

    async def register(
        self,
        school_id: str,
        username: str,
        email: str,
        password: str,
        name: Optional[str] = None,
        section: Optional[str] = None,
        course: Optional[str] = None,
        year: Optional[int] = None,
        department: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        school_id, username, email = (school_id or "").strip(), (username or "").strip(), (email or "").strip()
        if not (school_id and username and email and password and password.strip()):
            raise InvalidInputError("Required fields cannot be empty.")

        _check_username(username)
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise InvalidInputError("Enter a valid email address.") from e
        if not is_strong_password(password):
            raise InvalidInputError(WEAK_PASSWORD_MESSAGE)

        role = role or "user"
        if role not in ROLES:
            raise InvalidInputError(f"Role must be one of: {', '.join(ROLES)}.")

        if await self.db_client.get_user_by_email(email):
            raise DuplicateAccountError("Email already exists.")
        if await self.db_client.get_user_by_username(username):
            raise DuplicateAccountError("Username already exists.")
        if await self.db_client.get_user_by_school_id(school_id):
            raise DuplicateAccountError("School ID already exists.")

        try:
            qr_code = generate_qr_code(school_id)
        except QRGenerationError as e:
            raise ServiceError(str(e)) from e

        user = User(
            id=uuid4(),
            school_id=school_id,
            username=username,
            email=email,
            password_hash=hash_password(password),
            name=name,
            section=section,
            course=course,
            year=year,
            department=department,
            role=role,
            profile_image=AVATAR_URL.format(seed=username),
            qr_code=qr_code,
        )
        try:
            user = await self.db_client.add_user(user)
        except DuplicateKeyError as e:
            raise _duplicate_account(e) from e

        logger.info(f"User '{username}' ({school_id}) registered with role '{role}'.")
        return user

    async def send_welcome(self, user: User):
        """Runs after the response; a failed email is only logged."""
        if not self.notifier:
            return
        try:
            await self.notifier.send_welcome(user)
        except Exception as e:
            logger.error(f"Failed to send welcome email to {user.email}: {e}", exc_info=True)

    async def authenticate(self, email: str, password: str) -> Tuple[User, Optional[Group]]:
        """Returns the user and the group they belong to, if any."""
        email = (email or "").strip()
        if not email or not password or not password.strip():
            raise InvalidInputError("Fields cannot be blank.")

        user = await self.db_client.get_user_by_email(email)
        if not user:
            raise AuthenticationError("User not found.")
        if not verify_password(password, user.password_hash):
            logger.warning(f"Wrong password for '{email}'.")
            raise AuthenticationError("Password does not matched.")

        group = await self.db_client.get_group(user.group_id) if user.group_id else None
        return user, group

    async def get_user(self, user_id: UUID) -> User:
        return await self._get_user_or_raise(user_id)

    async def regenerate_qr(self, user_id: UUID) -> User:
        user = await self._get_user_or_raise(user_id)
        try:
            qr_code = generate_qr_code(user.school_id)
        except QRGenerationError as e:
            raise ServiceError(str(e)) from e
        return await self._update(user_id, {"qr_code": qr_code})

    async def change_password(
        self,
        actor: User,
        user_id: UUID,
        new_password: str,
        current_password: Optional[str] = None,
    ) -> User:
        """
        Admins may reset any password without the current one.
        Everyone else must prove the current password and gets a notification email.
        """
        if not is_strong_password(new_password):
            raise InvalidInputError(WEAK_PASSWORD_MESSAGE)

        user = await self._get_user_or_raise(user_id)
        is_admin = actor.role == "admin"
        if not is_admin:
            if not current_password:
                raise InvalidInputError("Current password is required")
            if not verify_password(current_password, user.password_hash):
                raise InvalidInputError("Current password is incorrect")

        user = await self._update(user_id, {"password_hash": hash_password(new_password)})
        logger.info(f"Password of user {user_id} changed by {actor.id}.")

        if not is_admin and self.notifier:
            try:
                await self.notifier.send_password_changed(user)
            except Exception as e:
                logger.error(f"Failed to send password change email to {user.email}: {e}", exc_info=True)
        return user

    async def update_username(self, user_id: UUID, username: str) -> User:
        username = (username or "").strip()
        if not username:
            raise InvalidInputError("Username cannot be empty")
        _check_username(username)
        return await self._update(user_id, {"username": username})

    async def update_information(
        self,
        user_id: UUID,
        name: Optional[str] = None,
        section: Optional[str] = None,
        course: Optional[str] = None,
        department: Optional[str] = None,
    ) -> User:
        fields = _non_blank(name=name, section=section, course=course, department=department)
        return await self._update(user_id, fields)

    async def admin_update_user(
        self,
        user_id: UUID,
        school_id: Optional[str] = None,
        username: Optional[str] = None,
        name: Optional[str] = None,
        section: Optional[str] = None,
        course: Optional[str] = None,
        department: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        fields = _non_blank(
            school_id=school_id, username=username, name=name,
            section=section, course=course, department=department,
        )
        if "username" in fields:
            _check_username(fields["username"])
        if role in ASSIGNABLE_ROLES:
            fields["role"] = role

        user = await self._update(user_id, fields)
        # The QR code encodes the school id, so it has to follow it.
        if "school_id" in fields:
            try:
                user = await self._update(user_id, {"qr_code": generate_qr_code(user.school_id)})
            except QRGenerationError as e:
                logger.error(f"User {user_id} changed school id but the QR code could not be rebuilt: {e}")
        return user

    async def delete_user(self, user_id: UUID):
        """Duties and attendance history are kept."""
        if not await self.db_client.delete_user(user_id):
            raise NotFoundError("User not found.")
        logger.info(f"User {user_id} deleted.")

    async def search_members(self, search: Optional[str] = None) -> List[User]:
        search = search.strip() if search and search.strip() else None
        return await self.db_client.search_users(search)

    async def list_students(self) -> List[User]:
        return await self.db_client.search_users(role="user")
