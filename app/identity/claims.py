"""Coercion of decrypted field values into age gate claims.

Decrypted values arrive as strings. Implausible values are reported as
absent rather than passed on.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from app.core.config import MAX_PLAUSIBLE_AGE, MIN_PLAUSIBLE_AGE

from .exceptions import FieldNotPresent
from .models import ClaimValue


class ClaimKind(str, Enum):
    """How a disclosed field is interpreted."""
    AGE = "age"              # integer years
    THRESHOLD = "threshold"  # boolean "over N" flag
    BIRTHDATE = "birthdate"  # date, converted to years


BIRTHDATE_FIELDS = frozenset({"birthdate", "dateOfBirth"})

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})

_THRESHOLD_NAME = re.compile(r"^(is|age)?over\d+$", re.IGNORECASE)

# Tried after ISO-8601
_BIRTHDATE_FORMATS = ("%m/%d/%Y",)


def infer_claim_kind(field_name: str) -> ClaimKind:
    """Pick the claim kind from the field name.

    over18, isOver18 and ageOver21 are threshold flags; overall is not.
    """
    if field_name in BIRTHDATE_FIELDS:
        return ClaimKind.BIRTHDATE
    if _THRESHOLD_NAME.match(field_name):
        return ClaimKind.THRESHOLD
    return ClaimKind.AGE


def is_plausible_age(age: int) -> bool:
    return MIN_PLAUSIBLE_AGE < age < MAX_PLAUSIBLE_AGE


def parse_age(field_name: str, raw: Any) -> int:
    """Parse an integer age, rejecting non-numeric and implausible values."""
    if isinstance(raw, bool):
        raise FieldNotPresent(field_name, "is not a number")
    try:
        age = int(str(raw).strip())
    except (TypeError, ValueError):
        raise FieldNotPresent(field_name, "is not a number")
    if not is_plausible_age(age):
        raise FieldNotPresent(field_name, "is outside the plausible age range")
    return age


def parse_threshold(field_name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise FieldNotPresent(field_name, "is not a boolean")


def age_from_birthdate(birthdate: date, today: Optional[date] = None) -> int:
    """Whole years elapsed since birthdate."""
    today = today or date.today()
    age = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        age -= 1
    return age


def _parse_date(text: str) -> date:
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _BIRTHDATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {text!r}")


def parse_birthdate(field_name: str, raw: Any, today: Optional[date] = None) -> int:
    """Years since an ISO-8601 or MM/DD/YYYY birthdate."""
    try:
        born = _parse_date(str(raw).strip())
    except (TypeError, ValueError):
        raise FieldNotPresent(field_name, "is not a date")
    age = age_from_birthdate(born, today)
    if not is_plausible_age(age):
        raise FieldNotPresent(field_name, "is outside the plausible age range")
    return age


def coerce_claim(field_name: str, raw: Any, kind: Optional[ClaimKind] = None) -> ClaimValue:
    """Convert a decrypted value to the type the age gate compares.

    Raises:
        FieldNotPresent: If the value is missing, malformed or implausible.
    """
    if raw is None or raw == "":
        raise FieldNotPresent(field_name)
    kind = kind or infer_claim_kind(field_name)
    if kind == ClaimKind.THRESHOLD:
        return parse_threshold(field_name, raw)
    if kind == ClaimKind.BIRTHDATE:
        return parse_birthdate(field_name, raw)
    return parse_age(field_name, raw)
