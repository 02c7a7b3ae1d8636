from typing import Annotated

from fastapi import Depends

from schoolcrm.core.config import settings
from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.core.exceptions import Forbidden
from schoolcrm.core.security import TokenPayload
from schoolcrm.domains.access.permissions import Action, PermissionEvaluator
from schoolcrm.domains.access.visibility import TaskVisibilityResolver


def get_root_user_ids() -> frozenset[str]:
    return settings.root_user_ids


def get_permissions(db: DbSession, root_ids: frozenset[str] = Depends(get_root_user_ids)) -> PermissionEvaluator:
    return PermissionEvaluator(db, root_ids)


Permissions = Annotated[PermissionEvaluator, Depends(get_permissions)]


def get_visibility(db: DbSession, permissions: Permissions) -> TaskVisibilityResolver:
    return TaskVisibilityResolver(db, permissions)


Visibility = Annotated[TaskVisibilityResolver, Depends(get_visibility)]


def require_permission(action: Action):
    def permission_checker(current_user: CurrentUser, permissions: Permissions) -> TokenPayload:
        if not permissions.can(current_user.sub, action):
            raise Forbidden()
        return current_user
    return permission_checker
