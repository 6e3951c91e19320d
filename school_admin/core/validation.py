"""Field rules shared by student, user and import payloads."""

import re
from decimal import Decimal
from typing import Optional

PHONE_NUMBER_PATTERN = re.compile(r"^[6-9]\d{9}$")
AADHAR_PATTERN = re.compile(r"^\d{12}$")

MAX_FEE_AMOUNT = Decimal("1000000")

PHONE_NUMBER_MESSAGE = "Please enter a valid 10-digit phone number"
AADHAR_MESSAGE = "Aadhar number must be 12 digits"


def normalize_phone_number(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = re.sub(r"[\s-]", "", str(value))
    if value.startswith("+91") and len(value) == 13:
        value = value[3:]
    elif value.startswith("0") and len(value) == 11:
        value = value[1:]
    return value


def is_valid_phone_number(value: Optional[str]) -> bool:
    return bool(value) and PHONE_NUMBER_PATTERN.match(value) is not None


def is_valid_aadhar(value: Optional[str]) -> bool:
    return bool(value) and AADHAR_PATTERN.match(value) is not None


def check_phone_number(value: Optional[str]) -> Optional[str]:
    """Pydantic validator body: normalize, then reject anything that is not an Indian mobile number."""
    if value is None or value == "":
        return None
    value = normalize_phone_number(value)
    if not is_valid_phone_number(value):
        raise ValueError(PHONE_NUMBER_MESSAGE)
    return value


def check_aadhar(value: Optional[str]) -> Optional[str]:
    if value is None or str(value).strip() == "":
        return None
    value = re.sub(r"\s", "", str(value))
    if not is_valid_aadhar(value):
        raise ValueError(AADHAR_MESSAGE)
    return value
