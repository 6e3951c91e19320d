"""
Split of one fee payment between the student's bus and school balances.

Every policy returns amounts that add up to the payment and never exceed the
outstanding balance of either bucket. Amounts are rounded to paise (0.01, half up).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Optional, Union

from school_admin.core.enums import SplitPolicy
from school_admin.core.exceptions import AllocationError

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class Allocation(NamedTuple):
    bus_fee_amount: Decimal
    school_fee_amount: Decimal


def to_money(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _outstanding(value: Optional[Number]) -> Decimal:
    amount = to_money(value)
    return amount if amount > ZERO else ZERO


def _rebalance(bus: Decimal, school: Decimal, bus_out: Decimal, school_out: Decimal) -> Allocation:
    """Move whatever one bucket received beyond its balance over to the other bucket."""
    if bus > bus_out:
        school += bus - bus_out
        bus = bus_out
    elif school > school_out:
        bus += school - school_out
        school = school_out
    return Allocation(bus, school)


def _equal(amount: Decimal, bus_out: Decimal, school_out: Decimal) -> Allocation:
    bus = to_money(amount / 2)
    return _rebalance(bus, amount - bus, bus_out, school_out)


def allocate(
    amount: Number,
    bus_outstanding: Number,
    school_outstanding: Number,
    policy: Union[SplitPolicy, str] = SplitPolicy.STANDARD,
    bus_monthly: Number = 0,
    school_monthly: Number = 0,
    manual_bus_amount: Optional[Number] = None,
    manual_school_amount: Optional[Number] = None,
) -> Allocation:
    """
    Split ``amount`` into (bus, school).

    standard: bus balance first, the rest to school.
    equal: half each, overflow moved to the other bucket.
    proportional: by bus_monthly : school_monthly; equal when both are zero.
    manual: manual_bus_amount / manual_school_amount, validated only.

    Raises AllocationError when the amount is not positive, exceeds the combined
    outstanding balance, or a manual split is inconsistent.
    """
    policy = SplitPolicy(policy)
    amount = to_money(amount)
    bus_out = _outstanding(bus_outstanding)
    school_out = _outstanding(school_outstanding)

    if amount <= ZERO:
        raise AllocationError("Payment amount must be greater than zero")
    if amount > bus_out + school_out:
        raise AllocationError(
            f"Payment amount {amount} exceeds the outstanding balance {bus_out + school_out}"
        )

    if policy == SplitPolicy.MANUAL:
        if manual_bus_amount is None or manual_school_amount is None:
            raise AllocationError("Manual split requires both bus and school amounts")
        bus = to_money(manual_bus_amount)
        school = to_money(manual_school_amount)
        if bus < ZERO or school < ZERO:
            raise AllocationError("Allocated amounts cannot be negative")
        if bus + school != amount:
            raise AllocationError("Bus and school amounts must add up to the payment amount")
        if bus > bus_out:
            raise AllocationError(f"Bus amount {bus} exceeds the bus fee outstanding {bus_out}")
        if school > school_out:
            raise AllocationError(f"School amount {school} exceeds the school fee outstanding {school_out}")
        return Allocation(bus, school)

    if policy == SplitPolicy.STANDARD:
        bus = min(amount, bus_out)
        return Allocation(bus, amount - bus)

    if policy == SplitPolicy.EQUAL:
        return _equal(amount, bus_out, school_out)

    bus_m = _outstanding(bus_monthly)
    school_m = _outstanding(school_monthly)
    combined = bus_m + school_m
    if combined == ZERO:
        return _equal(amount, bus_out, school_out)
    bus = to_money(amount * bus_m / combined)
    return _rebalance(bus, amount - bus, bus_out, school_out)
