import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4
from typing import List, Optional
import jwt
from pydantic import ValidationError

from .schemas.user import (
    AdminUserUpdateRequest,
    InformationUpdateRequest,
    LoginRequest,
    LoginResponse,
    MemberSummary,
    PasswordChangeRequest,
    QRCodeResponse,
    RegisterRequest,
    RegisterResponse,
    Token,
    TokenData,
    UserGroupSummary,
    UserResponse,
    UsernameUpdateRequest,
)
from ..models.db_models import Group, User
from ..models.redis_models import UserSessionRedis
from ..db.redis_client import RedisClient
from ..db.db_client import AsyncPostgresClient
from ..services.errors import ServiceError
from ..services.user_service import UserService
from ..config.config import settings
from .dependencies import get_db_client, get_redis_client, get_user_service
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

# --- Router and security setup ---
router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")

PRIVILEGED_ROLES = ("admin", "professor")


# --- Helpers ---
def create_access_token(data: dict, expires_delta: timedelta):
    """Signs `data` into a JWT that expires after `expires_delta`."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


async def _open_session(user: User, redis_client: RedisClient) -> Token:
    """Stores a Redis session for the user and issues the matching bearer token."""
    ttl = settings.SESSION_TTL_SECONDS
    now = datetime.now(timezone.utc)
    session = UserSessionRedis(
        user_id=user.id,
        role=user.role,
        session_id=uuid4(),
        session_start_time=now,
        session_end_time=now + timedelta(seconds=ttl)
    )
    await redis_client.save_user_session(session, ttl=ttl)
    logger.info(f"Redis session created for user '{user.username}' with a TTL of {ttl} seconds.")

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return Token(access_token=access_token, token_type="bearer")


def _group_summary(group: Optional[Group], members: List[User]) -> Optional[UserGroupSummary]:
    if not group:
        return None
    return UserGroupSummary(
        id=group.id,
        name=group.name,
        members=[MemberSummary.model_validate(member) for member in members]
    )


# --- Dependencies for protected routes ---
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    redis_client: RedisClient = Depends(get_redis_client),
    db_client: AsyncPostgresClient = Depends(get_db_client)
) -> User:
    """
    Decodes the token, requires a live Redis session for its subject and
    returns the user as currently stored.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenData.model_validate(payload)
        if token_data.sub is None:
            logger.warning(f"Token is valid but missing 'sub': {payload}")
            raise credentials_exception
        user_id = UUID(token_data.sub)
    except (jwt.PyJWTError, ValidationError, ValueError) as e:
        logger.warning(f"Token validation error: {e}")
        raise credentials_exception

    user_session = await redis_client.get_user_session(user_id)
    if user_session is None:
        logger.warning(f"User '{user_id}' has a valid token but no active session in Redis. Denying access.")
        raise credentials_exception

    user = await db_client.get_user_by_id(user_id)
    if user is None:
        logger.warning(f"User '{user_id}' has a session but no longer exists.")
        raise credentials_exception
    return user


async def admin_only(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Admins only.")
    return user


async def self_or_admin(request: Request, user: User = Depends(get_current_user)) -> User:
    """
    Admins and professors pass. Anyone else only for their own
    `user_id` or `school_id` path parameter.
    """
    if user.role in PRIVILEGED_ROLES:
        return user

    params = request.path_params
    if "user_id" in params and str(params["user_id"]) == str(user.id):
        return user
    if "school_id" in params and params["school_id"] == user.school_id:
        return user

    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Not your account.")


# --- Login logic ---

async def _perform_login(email: str, password: str, service: UserService, redis_client: RedisClient) -> LoginResponse:
    logger.info(f"Login attempt for '{email}'.")
    try:
        user, group = await service.authenticate(email, password)
    except ServiceError as e:
        logger.warning(f"Login failed for '{email}': {e}")
        raise to_http_exception(e)

    token = await _open_session(user, redis_client)
    members = await service.db_client.get_group_members(group.id) if group else []

    logger.info(f"User '{user.username}' ({user.role}) logged in successfully.")
    return LoginResponse(token=token, user=UserResponse.model_validate(user), group=_group_summary(group, members))


# --- Endpoints ---

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def register(
    request: Request,
    register_request: RegisterRequest,
    background_tasks: BackgroundTasks,
    service: UserService = Depends(get_user_service),
    redis_client: RedisClient = Depends(get_redis_client)
):
    try:
        user = await service.register(**register_request.model_dump())
    except ServiceError as e:
        raise to_http_exception(e)

    token = await _open_session(user, redis_client)
    # Sent after the response goes out; failures are only logged.
    background_tasks.add_task(service.send_welcome, user)
    return RegisterResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/token", response_model=Token)
@limiter.limit("60/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    service: UserService = Depends(get_user_service),
    redis_client: RedisClient = Depends(get_redis_client)
):
    """Standard OAuth2 endpoint for Swagger UI; the username field carries the email."""
    login_response = await _perform_login(form_data.username, form_data.password, service, redis_client)
    return login_response.token


@router.post("/login", response_model=LoginResponse)
@limiter.limit("60/minute")
async def login(
    request: Request,
    login_request: LoginRequest,
    service: UserService = Depends(get_user_service),
    redis_client: RedisClient = Depends(get_redis_client)
):
    return await _perform_login(login_request.email, login_request.password, service, redis_client)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("60/minute")
async def logout(
    request: Request,
    redis_client: RedisClient = Depends(get_redis_client),
    current_user: User = Depends(get_current_user)
):
    """Deletes the caller's Redis session; the token stops working immediately."""
    await redis_client.delete_user_session(current_user.id)
    logger.info(f"Session for user '{current_user.username}' deleted from Redis.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/regenerate-qr/{user_id}", response_model=QRCodeResponse)
async def regenerate_qr(
    user_id: UUID,
    _: User = Depends(self_or_admin),
    service: UserService = Depends(get_user_service)
):
    try:
        user = await service.regenerate_qr(user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return QRCodeResponse(qr_code=user.qr_code)


# --- Profile editing ---

@router.put("/update/{user_id}/password")
@limiter.limit("10/minute")
async def update_password(
    request: Request,
    user_id: UUID,
    change_request: PasswordChangeRequest,
    current_user: User = Depends(self_or_admin),
    service: UserService = Depends(get_user_service)
):
    try:
        await service.change_password(
            actor=current_user,
            user_id=user_id,
            new_password=change_request.new_password,
            current_password=change_request.current_password
        )
    except ServiceError as e:
        raise to_http_exception(e)
    return {"message": "Password updated successfully"}


@router.put("/update/{user_id}/username", response_model=UserResponse)
async def update_username(
    user_id: UUID,
    update_request: UsernameUpdateRequest,
    _: User = Depends(self_or_admin),
    service: UserService = Depends(get_user_service)
):
    try:
        return await service.update_username(user_id, update_request.username)
    except ServiceError as e:
        raise to_http_exception(e)


@router.put("/update/{user_id}/information", response_model=UserResponse)
async def update_information(
    user_id: UUID,
    update_request: InformationUpdateRequest,
    _: User = Depends(self_or_admin),
    service: UserService = Depends(get_user_service)
):
    try:
        return await service.update_information(user_id, **update_request.model_dump())
    except ServiceError as e:
        raise to_http_exception(e)


# --- Admin account management ---

@router.put("/update/{user_id}", response_model=UserResponse)
async def admin_update_user(
    user_id: UUID,
    update_request: AdminUserUpdateRequest,
    _: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    try:
        return await service.admin_update_user(user_id, **update_request.model_dump())
    except ServiceError as e:
        raise to_http_exception(e)


@router.delete("/delete/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    _: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    try:
        await service.delete_user(user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/members/user", response_model=List[UserResponse])
async def search_members(
    search: Optional[str] = None,
    _: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    """Case-insensitive match on username, email or school id."""
    return await service.search_members(search)
