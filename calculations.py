"""
Derived fields computed for every patient response.
"""

import math
from datetime import date
from typing import Optional, Union

DateLike = Union[date, str]

AGE_GROUPS = ("0-18", "19-64", "65+")


def to_date(value: DateLike) -> date:
    """Accept a date or an ISO YYYY-MM-DD string"""
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def calculate_age(date_of_birth: DateLike, today: Optional[date] = None) -> int:
    """
    Whole years elapsed since birth.

    One is subtracted when the anniversary has not yet been reached this year.
    """
    birth = to_date(date_of_birth)
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def calculate_length_of_stay(admission_date: DateLike,
                             discharge_date: Optional[DateLike]) -> Optional[int]:
    """
    Inclusive day count between admission and discharge.

    Returns None while the patient is still admitted.
    """
    if not discharge_date:
        return None
    delta = to_date(discharge_date) - to_date(admission_date)
    return math.ceil(delta.total_seconds() / 86400) + 1


def age_group(age: int) -> str:
    if age <= 18:
        return "0-18"
    if age <= 64:
        return "19-64"
    return "65+"
