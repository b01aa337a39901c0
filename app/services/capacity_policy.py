"""Seat-count rules per offering type."""

from dataclasses import dataclass
from typing import Dict, Optional

from app.schemas.capacity import CapacityValidation


@dataclass(frozen=True)
class CapacityRule:
    """Allowed seat range for one offering type."""

    min: int
    max: int
    optimal: int


# Class size limits shared by all offering types
INDIVIDUAL_CAPACITY = 1
GROUP_MAX_CAPACITY = 9
GROUP_MIN_CAPACITY = 2
GROUP_OPTIMAL_CAPACITY = 6

INDIVIDUAL_OFFERING_TYPE = "individual"

COURSE_TYPE_CAPACITY: Dict[str, CapacityRule] = {
    "Basic": CapacityRule(min=3, max=9, optimal=6),
    "Everyday A": CapacityRule(min=3, max=9, optimal=6),
    "Everyday B": CapacityRule(min=3, max=9, optimal=6),
    "Speak Up": CapacityRule(min=4, max=9, optimal=7),
    "Business English": CapacityRule(min=2, max=6, optimal=4),
    "1-on-1": CapacityRule(min=1, max=1, optimal=1),
}


def get_rule(offering_type: str) -> Optional[CapacityRule]:
    return COURSE_TYPE_CAPACITY.get(offering_type)


def validate_capacity(offering_type: str, requested_capacity: int) -> CapacityValidation:
    """
    Check a requested seat count against the bounds for an offering type.

    Unknown offering types are invalid and get the group optimum as the
    recommendation. Out-of-range requests get the nearest bound.
    """
    rule = get_rule(offering_type)

    if rule is None:
        return CapacityValidation(
            valid=False,
            message="Unknown course type",
            recommended_capacity=GROUP_OPTIMAL_CAPACITY,
        )

    if requested_capacity < rule.min:
        return CapacityValidation(
            valid=False,
            message=f"Minimum capacity for {offering_type} is {rule.min}",
            recommended_capacity=rule.min,
        )

    if requested_capacity > rule.max:
        return CapacityValidation(
            valid=False,
            message=f"Maximum capacity for {offering_type} is {rule.max}",
            recommended_capacity=rule.max,
        )

    return CapacityValidation(valid=True)


def default_capacity(offering_type: str) -> int:
    """Seat count for a class that does not declare one."""
    rule = get_rule(offering_type)
    if rule is not None:
        return rule.max
    if offering_type == INDIVIDUAL_OFFERING_TYPE:
        return INDIVIDUAL_CAPACITY
    return GROUP_MAX_CAPACITY


def optimal_capacity(offering_type: str) -> int:
    rule = get_rule(offering_type)
    return rule.optimal if rule is not None else GROUP_OPTIMAL_CAPACITY


def effective_capacity(max_students: Optional[int], offering_type: str) -> int:
    """Declared seat count, or the policy default when none is declared."""
    if max_students:
        return max_students
    return default_capacity(offering_type)
