"""
Grading calculator

Marks (0-100 per component) -> subject total -> SGPA (0-10) -> CGPA.
Grade points map linearly from marks (100 marks = 10 points) and every
subject carries the same weight.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from numbers import Real
from typing import Any, Iterable, Optional
from ..core.exceptions import EmptyInputError, OutOfRangeError


def round2(value: float) -> float:
    """Round half-up to 2 decimals"""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and not math.isnan(value)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def subject_total(internal: float, end_term: float) -> float:
    if not _is_number(internal) or not _is_number(end_term):
        raise OutOfRangeError("Marks must be numbers")
    if internal < 0 or internal > 100 or end_term < 0 or end_term > 100:
        raise OutOfRangeError("Marks must be between 0 and 100")
    return round2(internal + end_term)


def compute_sgpa(subjects: Iterable[Any]) -> float:
    subjects = list(subjects or [])
    if not subjects:
        raise EmptyInputError("Subjects list is required and must not be empty")

    total_points = 0.0
    for subject in subjects:
        total = _field(subject, "total")
        if not _is_number(total):
            raise OutOfRangeError("Each subject must have a numeric total")
        if total < 0 or total > 100:
            raise OutOfRangeError("Subject total must be between 0 and 100")
        total_points += total / 10

    return round2(total_points / len(subjects))


def compute_cgpa(records: Iterable[Any]) -> float:
    # An empty history is a CGPA of 0, not an error (unlike compute_sgpa)
    values = []
    for record in records or []:
        sgpa = _field(record, "sgpa")
        if not _is_number(sgpa):
            continue
        if sgpa < 0 or sgpa > 10:
            raise OutOfRangeError("SGPA must be between 0 and 10")
        values.append(float(sgpa))

    if not values:
        return 0
    return round2(sum(values) / len(values))


def percentage(grade: Optional[float], max_points: Optional[float]) -> Optional[float]:
    if grade is None or not max_points:
        return None
    return grade / max_points * 100
