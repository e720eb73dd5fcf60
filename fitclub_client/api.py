"""
Request wrappers for the FitClub API.

Every call makes exactly one request and returns the payload stored under the
envelope key it expects (`user`, `groups`, ...). When that key is missing the
server's `error` message is raised as an ApiError. There is no retrying or
caching; failures surface to the caller immediately.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from fitclub_client.config import get_client_settings

logger = logging.getLogger(__name__)

# (filename, content, content_type), as accepted by requests' `files=`.
FileTuple = tuple[str, bytes, str]


class ApiError(Exception):
    """Raised when a response does not carry the expected payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BaseApi:
    def __init__(self, base_url: Optional[str] = None, session: Any = None):
        settings = get_client_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.api_prefix = settings.api_prefix
        # Anything with a requests-style `request()` works, e.g. a TestClient.
        self.session = session if session is not None else requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    def _call(self, method: str, path: str, key: str, **kwargs) -> dict:
        """Sends one request and returns the envelope if it carries `key`."""
        response = self.session.request(method, self._url(path), **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        value = data.get(key)
        if value is None or value is False:
            message = data.get("error") or f"Request failed ({response.status_code})"
            logger.debug("%s %s failed: %s", method, path, message)
            raise ApiError(str(message), status_code=response.status_code)
        return data

    def _get(self, method: str, path: str, key: str, **kwargs) -> Any:
        return self._call(method, path, key, **kwargs)[key]


def _require(value: Optional[str], message: str) -> str:
    if not value:
        raise ApiError(message)
    return value


class AuthApi(BaseApi):
    def register(self, email: str, password: str) -> dict:
        return self._get(
            "POST", "/auth/register", "account", json={"email": email, "password": password}
        )

    def login(self, email: str, password: str) -> dict:
        """Returns {"account": ..., "token": ...}."""
        data = self._call(
            "POST", "/auth/login", "account", json={"email": email, "password": password}
        )
        return {"account": data["account"], "token": data.get("token")}

    def me(self, token: str) -> dict:
        return self._get(
            "GET", "/auth/me", "account", headers={"Authorization": f"Bearer {token}"}
        )


class UsersApi(BaseApi):
    def get_users(self) -> list[dict]:
        return self._get("GET", "/users", "users")

    def get_user(self, user_id: str) -> dict:
        _require(user_id, "User does not exist")
        return self._get("GET", f"/users/{user_id}", "user")

    def get_basic_user(self, user_id: str) -> dict:
        _require(user_id, "User does not exist")
        return self._get("GET", f"/users/{user_id}/basic", "user")

    def add_user(self, user: dict) -> dict:
        new_user = {k: v for k, v in user.items() if k != "_id"}
        return self._get("POST", "/users", "user", json=new_user)

    def update_user(self, user: Optional[dict]) -> dict:
        if not user:
            raise ApiError("User does not exist")
        user_id = _require(user.get("_id"), "User does not exist")
        return self._get("PUT", f"/users/{user_id}", "user", json=user)

    def delete_user(self, user_id: str) -> bool:
        _require(user_id, "User does not exist")
        return self._get("DELETE", f"/users/{user_id}", "success")

    def update_avatar(self, user_id: Optional[str], file: FileTuple) -> dict:
        _require(user_id, "User does not exist")
        return self._get("PUT", f"/users/{user_id}/avatar", "user", files={"file": file})


class GroupsApi(BaseApi):
    def get_public_groups(self) -> list[dict]:
        return self._get("GET", "/groups", "groups")

    def get_joined_groups(self, user_id: str) -> list[dict]:
        _require(user_id, "User does not exist")
        return self._get("GET", f"/groups/{user_id}/joined", "groups")

    def get_group(self, group_id: str) -> dict:
        _require(group_id, "Group does not exist")
        return self._get("GET", f"/groups/{group_id}", "group")

    def get_group_members(self, group_id: str) -> list[dict]:
        _require(group_id, "Group does not exist")
        return self._get("GET", f"/groups/{group_id}/members", "users")

    def add_group(self, group: dict, photo: Optional[FileTuple] = None) -> dict:
        data = {"name": group.get("name", ""), "visibility": group.get("visibility", "")}
        if group.get("ownerId"):
            data["ownerId"] = group["ownerId"]
        if group.get("members"):
            data["members"] = list(group["members"])
        files = {"photo": photo} if photo else None
        return self._get("POST", "/groups", "group", data=data, files=files)

    def update_group(self, group: dict, photo: Optional[FileTuple] = None) -> dict:
        group_id = _require(group.get("_id"), "Group does not exist")
        data = {"name": group.get("name", ""), "visibility": group.get("visibility", "")}
        files = {"photo": photo} if photo else None
        if not photo and not group.get("photoUrl"):
            # The form cleared the photo.
            data["clearPhoto"] = "true"
        return self._get("PUT", f"/groups/{group_id}", "group", data=data, files=files)

    def invite_members(self, group_id: str, member_ids: list[str]) -> dict:
        _require(group_id, "Group does not exist")
        return self._get(
            "POST",
            f"/groups/{group_id}/inviteMembers",
            "group",
            json={"members": list(member_ids)},
        )

    def add_member(self, group_id: str, user_id: str) -> dict:
        _require(group_id, "Group does not exist")
        _require(user_id, "User does not exist")
        return self._get(
            "PUT", f"/groups/{group_id}/addMember", "group", json={"userId": user_id}
        )

    def remove_member(self, group_id: str, user_id: str) -> dict:
        _require(group_id, "Group does not exist")
        _require(user_id, "User does not exist")
        return self._get(
            "PUT", f"/groups/{group_id}/removeMember", "group", json={"userId": user_id}
        )

    def delete_group(self, group_id: str) -> bool:
        _require(group_id, "Group does not exist")
        return self._get("DELETE", f"/groups/{group_id}", "success")


class FitClubApi:
    """Bundles the wrappers over one shared session."""

    def __init__(self, base_url: Optional[str] = None, session: Any = None):
        session = session if session is not None else requests.Session()
        self.auth = AuthApi(base_url, session)
        self.user = UsersApi(base_url, session)
        self.group = GroupsApi(base_url, session)
