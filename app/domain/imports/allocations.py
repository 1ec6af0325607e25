"""Validation and application of responsibility splits."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Collection, List, Optional, Sequence

from app.domain.imports.schemas import ResponsibilityAllocation

ONE_HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


class AllocationError(ValueError):
    """The responsibility split cannot be applied."""


@dataclass(frozen=True)
class AllocationShare:
    responsible_id: int
    percentage: Decimal
    calculated_amount: Decimal
    notes: Optional[str] = None


def total_percentage(allocations: Sequence[ResponsibilityAllocation]) -> Decimal:
    return sum(
        (allocation.percentage.quantize(CENTS, rounding=ROUND_HALF_UP) for allocation in allocations),
        Decimal("0"),
    )


def validate_allocations(
    allocations: Sequence[ResponsibilityAllocation],
    known_responsible_ids: Collection[int],
    tolerance: Decimal = CENTS,
) -> List[ResponsibilityAllocation]:
    """Check a split before any transaction is built from it.

    Percentages must be in (0, 100], each responsible may appear once, every
    responsible must be in ``known_responsible_ids`` and the total must be
    within ``tolerance`` of 100.
    """
    if not allocations:
        raise AllocationError("At least one responsibility assignment is required")

    seen: set[int] = set()
    for allocation in allocations:
        if allocation.percentage <= 0 or allocation.percentage > ONE_HUNDRED:
            raise AllocationError(
                f"Percentage for responsible {allocation.responsible_id} must be between 0.01 and 100"
            )
        if allocation.responsible_id in seen:
            raise AllocationError(f"Responsible {allocation.responsible_id} is listed more than once")
        seen.add(allocation.responsible_id)

    missing = [responsible_id for responsible_id in seen if responsible_id not in known_responsible_ids]
    if missing:
        raise AllocationError(f"Responsible {sorted(missing)[0]} not found for the current user")

    total = total_percentage(allocations)
    if abs(total - ONE_HUNDRED) > tolerance:
        raise AllocationError(f"The sum of responsibility percentages must total 100% (got {total}%)")

    return list(allocations)


def split_amount(amount: Decimal, allocations: Sequence[ResponsibilityAllocation]) -> List[AllocationShare]:
    """Attribute ``amount`` to each responsible, rounding each share to cents."""
    shares: List[AllocationShare] = []
    for allocation in allocations:
        percentage = allocation.percentage.quantize(CENTS, rounding=ROUND_HALF_UP)
        calculated = (amount * percentage / ONE_HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)
        shares.append(
            AllocationShare(
                responsible_id=allocation.responsible_id,
                percentage=percentage,
                calculated_amount=calculated,
                notes=allocation.notes,
            )
        )
    return shares


__all__ = ["AllocationError", "AllocationShare", "split_amount", "total_percentage", "validate_allocations"]
