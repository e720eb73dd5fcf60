"""
HTTP routes for accounts, users and groups.
"""

from __future__ import annotations

import logging
import os
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, UploadFile

from fitclub_api import credentials
from fitclub_api.db import AccountRecord, DbClient, as_dicts
from fitclub_api.dependencies import get_db_client, get_storage_client
from fitclub_api.errors import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from fitclub_api.schemas import (
    AccountResponse,
    AccountStatusRequest,
    BasicUserResponse,
    GroupResponse,
    GroupsResponse,
    InviteMembersRequest,
    LoginRequest,
    LoginResponse,
    MemberRequest,
    RegisterRequest,
    SuccessResponse,
    UserPayload,
    UserResponse,
    UsersResponse,
)
from fitclub_api.storage import StorageClient
from fitclub_shared.types import Visibility
from fitclub_shared.validation import first_error, validate_group, validate_user

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])
groups_router = APIRouter(prefix="/groups", tags=["groups"])

router = APIRouter()


def _require_id(value: Optional[str], message: str) -> str:
    """Rejects blank identifiers before anything touches the store."""
    if not value or not value.strip() or value == "undefined":
        raise ValidationError(message)
    return value.strip()


def _raise_on_errors(errors: dict[str, str]) -> None:
    message = first_error(errors)
    if message:
        raise ValidationError(message)


async def _upload_image(
    storage: StorageClient, upload: UploadFile, prefix: str
) -> str:
    """Stores an uploaded image and returns the URL to persist."""
    data = await upload.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationError("Only image uploads are supported")
    _, ext = os.path.splitext(upload.filename or "")
    path = f"{prefix}/{uuid4().hex}{ext.lower()}"
    url = storage.upload_bytes(path, data, content_type)
    logger.info("Uploaded %d bytes to %s", len(data), path)
    return url


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@auth_router.post("/register", response_model=AccountResponse, status_code=201)
def register(payload: RegisterRequest, db: DbClient = Depends(get_db_client)):
    account = credentials.create_account(
        db, payload.email, payload.password, payload.provider
    )
    return {"account": account.as_public_dict()}


@auth_router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: DbClient = Depends(get_db_client)):
    account = credentials.authenticate(db, payload.email, payload.password)
    token = credentials.create_access_token(account.account_id)
    return {"account": account.as_public_dict(), "token": token}


@auth_router.get("/me", response_model=AccountResponse)
def read_current_account(
    account: AccountRecord = Depends(credentials.get_current_account),
):
    return {"account": account.as_public_dict()}


@auth_router.put("/{account_id}/status", response_model=AccountResponse)
def update_account_status(
    account_id: str,
    payload: AccountStatusRequest,
    current: AccountRecord = Depends(credentials.get_current_account),
    db: DbClient = Depends(get_db_client),
):
    """Accounts may only change their own status."""
    account_id = _require_id(account_id, "Account does not exist")
    if account_id != current.account_id:
        logger.warning(
            "Account %s tried to change the status of %s", current.account_id, account_id
        )
        raise ForbiddenError("You can only change the status of your own account")
    account = credentials.set_account_status(db, account_id, payload.status)
    logger.info("Account %s status set to %s", account_id, account.status)
    return {"account": account.as_public_dict()}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _get_user_or_404(db: DbClient, user_id: str):
    user = db.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_linked_account(db: DbClient, values: dict) -> None:
    """A user may only link an existing account; a blank id unlinks."""
    if "account_id" not in values:
        return
    values["account_id"] = (values["account_id"] or "").strip() or None
    if values["account_id"] and not db.get_account(values["account_id"]):
        raise NotFoundError("Account not found")


def _ensure_users_exist(db: DbClient, user_ids: list[str]) -> None:
    found = {user.user_id for user in db.get_users(user_ids)}
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise NotFoundError(f"User not found: {missing[0]}")


@users_router.get("", response_model=UsersResponse)
def list_users(db: DbClient = Depends(get_db_client)):
    return {"users": as_dicts(db.list_users(), basic=True)}


@users_router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, db: DbClient = Depends(get_db_client)):
    user_id = _require_id(user_id, "User does not exist")
    return {"user": _get_user_or_404(db, user_id).as_dict()}


@users_router.get("/{user_id}/basic", response_model=BasicUserResponse)
def get_basic_user(user_id: str, db: DbClient = Depends(get_db_client)):
    user_id = _require_id(user_id, "User does not exist")
    return {"user": _get_user_or_404(db, user_id).as_basic_dict()}


@users_router.post("", response_model=UserResponse, status_code=201)
def create_user(payload: UserPayload, db: DbClient = Depends(get_db_client)):
    values = payload.model_dump()
    _raise_on_errors(validate_user(values))
    _check_linked_account(db, values)
    user = db.create_user(values)
    logger.info("Created user %s", user.user_id)
    return {"user": user.as_dict()}


@users_router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str, payload: UserPayload, db: DbClient = Depends(get_db_client)
):
    user_id = _require_id(user_id, "User does not exist")
    existing = _get_user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    merged = {
        "name": existing.name,
        "age": existing.age,
        "sex": existing.sex,
        "height": existing.height,
        "weight": existing.weight,
        **changes,
    }
    _raise_on_errors(validate_user(merged))
    _check_linked_account(db, changes)
    user = db.update_user(user_id, changes)
    if not user:
        raise NotFoundError("User not found")
    return {"user": user.as_dict()}


@users_router.delete("/{user_id}", response_model=SuccessResponse)
def delete_user(user_id: str, db: DbClient = Depends(get_db_client)):
    user_id = _require_id(user_id, "User does not exist")
    if not db.delete_user(user_id):
        raise NotFoundError("User not found")
    logger.info("Deleted user %s", user_id)
    return {"success": True}


@users_router.put("/{user_id}/avatar", response_model=UserResponse)
async def update_avatar(
    user_id: str,
    file: UploadFile = File(...),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    user_id = _require_id(user_id, "User does not exist")
    _get_user_or_404(db, user_id)
    url = await _upload_image(storage, file, f"avatars/users/{user_id}")
    user = db.set_user_avatar(user_id, url)
    if not user:
        raise NotFoundError("User not found")
    return {"user": user.as_dict()}


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


def _get_group_or_404(db: DbClient, group_id: str):
    group = db.get_group(group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


@groups_router.get("", response_model=GroupsResponse)
def list_public_groups(db: DbClient = Depends(get_db_client)):
    return {"groups": as_dicts(db.list_public_groups())}


@groups_router.get("/{user_id}/joined", response_model=GroupsResponse)
def list_joined_groups(user_id: str, db: DbClient = Depends(get_db_client)):
    user_id = _require_id(user_id, "User does not exist")
    _get_user_or_404(db, user_id)
    return {"groups": as_dicts(db.list_joined_groups(user_id))}


@groups_router.get("/{group_id}", response_model=GroupResponse)
def get_group(group_id: str, db: DbClient = Depends(get_db_client)):
    group_id = _require_id(group_id, "Group does not exist")
    return {"group": _get_group_or_404(db, group_id).as_dict()}


@groups_router.get("/{group_id}/members", response_model=UsersResponse)
def get_group_members(group_id: str, db: DbClient = Depends(get_db_client)):
    group_id = _require_id(group_id, "Group does not exist")
    group = _get_group_or_404(db, group_id)
    return {"users": as_dicts(db.get_users(group.members), basic=True)}


@groups_router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    name: str = Form(""),
    visibility: str = Form(""),
    owner_id: Optional[str] = Form(None, alias="ownerId"),
    members: list[str] = Form([]),
    photo: Optional[UploadFile] = File(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    _raise_on_errors(validate_group({"name": name, "visibility": visibility}))
    member_ids = [m for m in members if m and m.strip()]
    referenced = ([owner_id] if owner_id else []) + member_ids
    _ensure_users_exist(db, referenced)

    photo_url = None
    if photo is not None and photo.filename:
        photo_url = await _upload_image(storage, photo, "photos/groups")
    group = db.create_group(
        name=name.strip(),
        visibility=Visibility(visibility),
        owner_id=owner_id or None,
        members=member_ids,
        photo_url=photo_url,
    )
    logger.info("Created group %s", group.group_id)
    return {"group": group.as_dict()}


@groups_router.put("/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    name: Optional[str] = Form(None),
    visibility: Optional[str] = Form(None),
    clear_photo: bool = Form(False, alias="clearPhoto"),
    photo: Optional[UploadFile] = File(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    group_id = _require_id(group_id, "Group does not exist")
    existing = _get_group_or_404(db, group_id)
    merged = {
        "name": existing.name if name is None else name,
        "visibility": existing.visibility.value if visibility is None else visibility,
    }
    _raise_on_errors(validate_group(merged))

    changes: dict = {
        "name": merged["name"].strip(),
        "visibility": Visibility(merged["visibility"]),
    }
    if photo is not None and photo.filename:
        changes["photo_url"] = await _upload_image(
            storage, photo, f"photos/groups/{group_id}"
        )
    elif clear_photo:
        changes["photo_url"] = None

    group = db.update_group(group_id, changes)
    if not group:
        raise NotFoundError("Group not found")
    return {"group": group.as_dict()}


@groups_router.post("/{group_id}/inviteMembers", response_model=GroupResponse)
def invite_members(
    group_id: str,
    payload: InviteMembersRequest,
    db: DbClient = Depends(get_db_client),
):
    group_id = _require_id(group_id, "Group does not exist")
    _get_group_or_404(db, group_id)
    user_ids = [uid.strip() for uid in payload.members if uid and uid.strip()]
    if not user_ids:
        raise ValidationError("At least one member is required")
    _ensure_users_exist(db, user_ids)
    group = db.invite_group_members(group_id, user_ids)
    if not group:
        raise NotFoundError("Group not found")
    logger.info("Invited %d users to group %s", len(user_ids), group_id)
    return {"group": group.as_dict()}


@groups_router.put("/{group_id}/addMember", response_model=GroupResponse)
def add_group_member(
    group_id: str, payload: MemberRequest, db: DbClient = Depends(get_db_client)
):
    group_id = _require_id(group_id, "Group does not exist")
    user_id = _require_id(payload.user_id, "User does not exist")
    _get_group_or_404(db, group_id)
    _get_user_or_404(db, user_id)
    group = db.add_group_member(group_id, user_id)
    if not group:
        raise NotFoundError("Group not found")
    logger.info("Added user %s to group %s", user_id, group_id)
    return {"group": group.as_dict()}


@groups_router.put("/{group_id}/removeMember", response_model=GroupResponse)
def remove_group_member(
    group_id: str, payload: MemberRequest, db: DbClient = Depends(get_db_client)
):
    """Removing a user who is not a member leaves the group unchanged."""
    group_id = _require_id(group_id, "Group does not exist")
    user_id = _require_id(payload.user_id, "User does not exist")
    group = db.remove_group_member(group_id, user_id)
    if not group:
        raise NotFoundError("Group not found")
    logger.info("Removed user %s from group %s", user_id, group_id)
    return {"group": group.as_dict()}


@groups_router.delete("/{group_id}", response_model=SuccessResponse)
def delete_group(group_id: str, db: DbClient = Depends(get_db_client)):
    group_id = _require_id(group_id, "Group does not exist")
    if not db.delete_group(group_id):
        raise NotFoundError("Group not found")
    logger.info("Deleted group %s", group_id)
    return {"success": True}


router.include_router(auth_router)
router.include_router(users_router)
router.include_router(groups_router)
