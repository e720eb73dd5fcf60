# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""
Validation rules for user profiles, groups and credentials.

Every rule returns None when the value is acceptable, or the message shown to
the user. The server runs the same rules before persisting anything, so the
client forms and the API cannot disagree.
"""

import re
from typing import Any, Mapping, Optional

from fitclub_shared.types import Sex, Visibility

MIN_NAME_LENGTH = 2
MIN_AGE = 18
MAX_AGE = 99
MIN_HEIGHT_CM = 100
MAX_HEIGHT_CM = 300
MAX_WEIGHT_KG = 300
MIN_PASSWORD_LENGTH = 8

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _measurement_value(measurement: Any) -> Optional[float]:
    """Extracts the numeric value of a {value, unit} pair, None when absent."""
    if measurement is None:
        return None
    value = measurement.get("value") if isinstance(measurement, Mapping) else measurement
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def validate_name(name: Optional[str]) -> Optional[str]:
    if len(name or "") < MIN_NAME_LENGTH:
        return "Name must be at least 2 characters"
    return None


def validate_age(age: Any) -> Optional[str]:
    if isinstance(age, (int, float)) and not isinstance(age, bool):
        if MIN_AGE <= age <= MAX_AGE:
            return None
    return "Invalid age: acceptable values are from 18 to 99 years-old"


def validate_sex(sex: Optional[str]) -> Optional[str]:
    if not sex:
        return "Sex is required"
    if sex not in {s.value for s in Sex}:
        return "Sex must be one of: woman, man"
    return None


def validate_height(height: Any) -> Optional[str]:
    value = _measurement_value(height)
    # Zero counts as "not provided", as in the profile form.
    if value is None or value == 0:
        return None
    if MIN_HEIGHT_CM <= value <= MAX_HEIGHT_CM:
        return None
    return "Invalid height: acceptable values are from 100 cm to 300 cm"


def validate_weight(weight: Any) -> Optional[str]:
    value = _measurement_value(weight)
    if value is None or value == 0:
        return None
    if value < MAX_WEIGHT_KG + 1:
        return None
    return "Invalid weight: acceptable values are from 30 kg to 300 kg"


def validate_user(values: Mapping[str, Any]) -> dict[str, str]:
    """Runs every profile rule and returns the failing fields."""
    errors = {
        "name": validate_name(values.get("name")),
        "age": validate_age(values.get("age")),
        "sex": validate_sex(values.get("sex")),
        "height": validate_height(values.get("height")),
        "weight": validate_weight(values.get("weight")),
    }
    return {field: message for field, message in errors.items() if message}


def validate_group_name(name: Optional[str]) -> Optional[str]:
    if len((name or "").strip()) < MIN_NAME_LENGTH:
        return "Group name must be at least 2 characters"
    return None


def validate_visibility(visibility: Optional[str]) -> Optional[str]:
    if visibility not in {v.value for v in Visibility}:
        return "Visibility must be either private or public"
    return None


def validate_group(values: Mapping[str, Any]) -> dict[str, str]:
    errors = {
        "name": validate_group_name(values.get("name")),
        "visibility": validate_visibility(values.get("visibility")),
    }
    return {field: message for field, message in errors.items() if message}


def validate_email(email: Optional[str]) -> Optional[str]:
    if not email or not _EMAIL_PATTERN.match(email.strip()):
        return "A valid email address is required"
    return None


def validate_password(password: Optional[str]) -> Optional[str]:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return "Password must be at least 8 characters"
    return None


def first_error(errors: Mapping[str, str]) -> Optional[str]:
    """Returns the first message of an errors mapping, if any."""
    for message in errors.values():
        return message
    return None
