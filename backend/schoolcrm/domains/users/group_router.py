from uuid import UUID

from fastapi import APIRouter, status

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.domains.access.dependencies import Permissions
from schoolcrm.domains.users.group_service import GroupService
from schoolcrm.domains.users.schemas import GroupCreate, GroupMemberResponse, GroupMembersUpdate, GroupResponse

router = APIRouter()


@router.get("/", response_model=list[GroupResponse])
def list_groups(db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = GroupService(db, permissions)
    return [
        GroupResponse(id=group.id, name=group.name, member_count=count, created_at=group.created_at)
        for group, count in service.list_groups()
    ]


@router.post("/", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(group: GroupCreate, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = GroupService(db, permissions)
    return service.create_group(current_user.sub, group.name)


@router.patch("/{group_id}", response_model=GroupResponse)
def rename_group(group_id: UUID, group: GroupCreate, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = GroupService(db, permissions)
    renamed = service.rename_group(current_user.sub, group_id, group.name)
    return GroupResponse(
        id=renamed.id, name=renamed.name, member_count=len(renamed.members), created_at=renamed.created_at
    )


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(group_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = GroupService(db, permissions)
    service.delete_group(current_user.sub, group_id)


@router.get("/{group_id}/members", response_model=list[GroupMemberResponse])
def list_members(group_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = GroupService(db, permissions)
    return [
        GroupMemberResponse(user_id=user.id, username=user.username, name=user.name, role=user.role)
        for user in service.list_members(group_id)
    ]


@router.post("/{group_id}/members", response_model=dict)
def add_members(
    group_id: UUID,
    request: GroupMembersUpdate,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
):
    service = GroupService(db, permissions)
    return {"added": service.add_members(current_user.sub, group_id, request.user_ids)}


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(group_id: UUID, user_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = GroupService(db, permissions)
    service.remove_member(current_user.sub, group_id, user_id)
