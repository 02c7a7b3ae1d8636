import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolcrm.core.database import atomic, transaction
from schoolcrm.core.exceptions import Forbidden, NotFound, Unauthenticated, ValidationFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.core.security import hash_password, verify_password
from schoolcrm.domains.access.permissions import Action, PermissionEvaluator
from schoolcrm.domains.tasks.models import utcnow
from schoolcrm.domains.users.models import User, UserRole
from schoolcrm.domains.users.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UsersService:
    def __init__(self, db: Session, permissions: PermissionEvaluator | None = None):
        self.db = db
        self.permissions = permissions

    def _require(self, actor_id: object, action: Action) -> None:
        if self.permissions is None or not self.permissions.can(actor_id, action):
            raise Forbidden()

    def get_users(self, skip: int = 0, limit: int = 100, include_archived: bool = False) -> list[User]:
        query = self.db.query(User)
        if not include_archived:
            query = query.filter(User.is_archived.is_(False))
        return query.order_by(User.name).offset(skip).limit(limit).all()

    def get_user(self, user_id: object) -> User | None:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        return self.db.query(User).filter(User.id == uid).first()

    def get_user_by_username(self, username: str) -> User | None:
        return self.db.query(User).filter(User.username == username.strip().lower()).first()

    def authenticate(self, username: str, password: str) -> User:
        user = self.get_user_by_username(username)
        if not user or not user.password_hash or not verify_password(password, user.password_hash):
            raise Unauthenticated("Incorrect username or password")
        if user.is_archived:
            raise Unauthenticated("Account is archived")
        self.touch_last_seen(user.id)
        return user

    def touch_last_seen(self, user_id: UUID) -> None:
        db_user = self.get_user(user_id)
        if db_user:
            db_user.last_seen = utcnow()
            self.db.commit()

    def create_user(self, actor_id: object, user: UserCreate) -> User:
        self._require(actor_id, Action.USER_MANAGE)

        db_user = User(
            username=user.username.strip().lower(),
            name=user.name.strip(),
            email=user.email,
            phone=user.phone,
            role=user.role,
            password_hash=hash_password(user.password),
        )
        db_user.extra_roles = [UserRole(role=r) for r in user.extra_roles if r != user.role]
        try:
            with transaction(self.db):
                self.db.add(db_user)
        except IntegrityError:
            raise ValidationFailed(f"Username '{user.username}' or email is already taken")

        logger.info(f"User {db_user.username} created by {actor_id} with role {db_user.role}")
        self.db.refresh(db_user)
        return db_user

    def update_user(self, actor_id: object, user_id: object, user: UserUpdate) -> User:
        """Managers change anything; others may only change a phone number."""
        db_user = self.get_user(user_id)
        if not db_user:
            raise NotFound("User not found")

        update_data = user.model_dump(exclude_unset=True)
        if set(update_data) - {"phone"}:
            self._require(actor_id, Action.USER_MANAGE)
        elif str(db_user.id) == str(actor_id):
            self._require(actor_id, Action.USER_UPDATE_PHONE_SELF)
        else:
            self._require(actor_id, Action.USER_UPDATE_PHONE_ANY)

        extra_roles = update_data.pop("extra_roles", None)
        password = update_data.pop("password", None)
        try:
            with transaction(self.db):
                for field, value in update_data.items():
                    setattr(db_user, field, value)
                if password:
                    db_user.password_hash = hash_password(password)
                if extra_roles is not None:
                    db_user.extra_roles = [UserRole(role=r) for r in extra_roles if r != db_user.role]
        except IntegrityError:
            raise ValidationFailed("Email is already taken")

        self.db.refresh(db_user)
        return db_user

    def archive_user(self, actor_id: object, user_id: object) -> User:
        self._require(actor_id, Action.USER_MANAGE)
        db_user = self.get_user(user_id)
        if not db_user:
            raise NotFound("User not found")
        if str(db_user.id) == str(actor_id):
            raise ValidationFailed("You cannot archive yourself")

        with atomic(self.db, "User archive"):
            db_user.is_archived = True
        logger.info(f"User {db_user.username} archived by {actor_id}")
        self.db.refresh(db_user)
        return db_user
