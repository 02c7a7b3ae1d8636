import logging
from uuid import UUID

from fastapi import APIRouter, status

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.core.exceptions import NotFound
from schoolcrm.core.security import create_access_token
from schoolcrm.domains.access.dependencies import Permissions
from schoolcrm.domains.users.schemas import LoginRequest, TokenResponse, UserCreate, UserResponse, UserUpdate
from schoolcrm.domains.users.service import UsersService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/auth/login", response_model=TokenResponse)
def login(request: LoginRequest, db: DbSession):
    service = UsersService(db)
    user = service.authenticate(request.username, request.password)
    logger.info(f"User {user.username} logged in")
    access_token = create_access_token(subject=str(user.id), name=user.name, role=user.role)
    return TokenResponse(access_token=access_token)


@router.get("/me", response_model=UserResponse)
def get_current_user(db: DbSession, current_user: CurrentUser):
    service = UsersService(db)
    user = service.get_user(current_user.sub)
    if not user:
        raise NotFound("User not found")
    return user


@router.get("/", response_model=list[UserResponse])
def list_users(
    db: DbSession,
    current_user: CurrentUser,
    skip: int = 0,
    limit: int = 100,
    include_archived: bool = False,
):
    service = UsersService(db)
    return service.get_users(skip=skip, limit=limit, include_archived=include_archived)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(user: UserCreate, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = UsersService(db, permissions)
    return service.create_user(current_user.sub, user)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: UUID, db: DbSession, current_user: CurrentUser):
    service = UsersService(db)
    user = service.get_user(user_id)
    if not user:
        raise NotFound("User not found")
    return user


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(user_id: UUID, user: UserUpdate, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = UsersService(db, permissions)
    return service.update_user(current_user.sub, user_id, user)


@router.post("/{user_id}/archive", response_model=UserResponse)
def archive_user(user_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = UsersService(db, permissions)
    return service.archive_user(current_user.sub, user_id)
