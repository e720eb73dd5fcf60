"""
Form objects for the user profile and group editors.

A form keeps its current values, validates them with the shared rules and
only calls the API once every field passes.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from fitclub_client.api import FileTuple, GroupsApi, UsersApi
from fitclub_shared.types import Sex, Unit, Visibility
from fitclub_shared.validation import validate_group, validate_user

logger = logging.getLogger(__name__)


class FormValidationError(Exception):
    def __init__(self, errors: dict[str, str]):
        super().__init__(next(iter(errors.values()), "Invalid form"))
        self.errors = errors


class BaseForm:
    fields: tuple[str, ...] = ()

    def __init__(self, record: Optional[dict] = None):
        self.record = record
        self.initial_values = self.get_initial_values(record)
        self.values = copy.deepcopy(self.initial_values)
        self.errors: dict[str, str] = {}

    @property
    def is_creating(self) -> bool:
        return not self.record

    def get_initial_values(self, record: Optional[dict]) -> dict:
        raise NotImplementedError

    def rules(self, values: dict) -> dict[str, str]:
        raise NotImplementedError

    def set_values(self, **values: Any) -> None:
        for name, value in values.items():
            if name in self.fields:
                self.values[name] = value

    def set_field_value(self, path: str, value: Any) -> None:
        """Sets a field by dotted path, e.g. "height.value"."""
        head, _, rest = path.partition(".")
        if head not in self.fields:
            raise KeyError(path)
        if not rest:
            self.values[head] = value
            return
        nested = self.values.get(head)
        if not isinstance(nested, dict):
            nested = {}
            self.values[head] = nested
        nested[rest] = value

    def validate(self) -> dict[str, str]:
        self.errors = self.rules(self.values)
        return self.errors

    def reset(self) -> None:
        self.values = copy.deepcopy(self.initial_values)
        self.errors = {}

    def _check(self) -> None:
        if self.validate():
            raise FormValidationError(self.errors)

    def _accept(self, record: Optional[dict]) -> None:
        """Resets the form around the record returned by a successful submit."""
        if not self.is_creating:
            self.record = record
            self.initial_values = self.get_initial_values(record)
        self.reset()


class UserForm(BaseForm):
    fields = ("name", "age", "sex", "height", "weight")

    def get_initial_values(self, user: Optional[dict]) -> dict:
        user = user or {}
        return {
            "name": user.get("name") or "",
            "age": user.get("age") or 0,
            "sex": user.get("sex") or Sex.WOMAN.value,
            "height": copy.deepcopy(user.get("height"))
            or {"value": None, "unit": Unit.CENTIMETERS.value},
            "weight": copy.deepcopy(user.get("weight"))
            or {"value": None, "unit": Unit.KILOS.value},
        }

    def rules(self, values: dict) -> dict[str, str]:
        return validate_user(values)

    def submit(self, api: UsersApi) -> dict:
        """Creates or updates the user; raises FormValidationError first if invalid."""
        self._check()
        payload = {"_id": (self.record or {}).get("_id", ""), **self.values}
        if self.is_creating:
            user = api.add_user(payload)
        else:
            user = api.update_user(payload)
        self._accept(user)
        return user

    def upload_avatar(self, api: UsersApi, file: FileTuple) -> dict:
        user = api.update_avatar((self.record or {}).get("_id"), file)
        if self.record is not None:
            self.record = {**self.record, "avatarUrl": user.get("avatarUrl")}
        return user


class GroupForm(BaseForm):
    fields = ("name", "visibility", "photoUrl")

    def __init__(self, group: Optional[dict] = None):
        super().__init__(group)
        self.photo_file: Optional[FileTuple] = None

    def get_initial_values(self, group: Optional[dict]) -> dict:
        group = group or {}
        return {
            "name": group.get("name") or "",
            "visibility": group.get("visibility") or Visibility.PRIVATE.value,
            "photoUrl": group.get("photoUrl") or "",
        }

    def rules(self, values: dict) -> dict[str, str]:
        return validate_group(values)

    def set_photo(self, file: FileTuple) -> None:
        self.photo_file = file

    def clear_photo(self) -> None:
        self.photo_file = None
        self.values["photoUrl"] = ""

    def reset(self) -> None:
        super().reset()
        self.photo_file = None

    def submit(
        self,
        api: GroupsApi,
        owner_id: Optional[str] = None,
        members: Optional[list[str]] = None,
    ) -> dict:
        self._check()
        payload = {"_id": (self.record or {}).get("_id", ""), **self.values}
        if self.is_creating:
            payload["ownerId"] = owner_id
            payload["members"] = members or []
            group = api.add_group(payload, photo=self.photo_file)
        else:
            group = api.update_group(payload, photo=self.photo_file)
        logger.debug("Saved group %s", group.get("_id"))
        self._accept(group)
        return group
