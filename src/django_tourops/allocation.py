"""Revenue-share allocation of a tour's prepaid gratuity pool.

A ledger splits the pool among the guide, an optional assistant and the
OP sub-pool, which is in turn split among zero or more OP members.

Rebalancing rules:
    - Top-level percent edit: the other top-level parts absorb the
      remainder in proportion to their current weights.
    - Top-level amount edit: if the edited amounts overflow the pool,
      every top-level part shrinks by the same factor; if they fall short,
      the other parts absorb the shortfall proportionally.
    - OP member edits: the sub-pool's own share is held fixed and the
      other members absorb the remainder evenly, not proportionally.

Every function takes a valid ledger and returns a new valid ledger; the
input is never modified.
"""

import calendar
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from django.utils import timezone

from django_tourops import conf
from django_tourops.exceptions import ValidationError
from django_tourops.snapshots import (
    AllocationLedger,
    OpPool,
    Payee,
    PayeeRole,
    ReservationSnapshot,
    StaffMember,
    TourInstance,
)
from django_tourops.values import CENT, HUNDRED, ZERO, Amount, Number, Percent, clamp, to_decimal

logger = logging.getLogger(__name__)


# Default split policy
GUIDE_PERCENT_WITH_ASSISTANT = Decimal("45")
ASSISTANT_PERCENT = Decimal("45")
GUIDE_PERCENT_SOLO = Decimal("90")
OP_PERCENT = Decimal("10")

# Stored percents keep 6 decimal places
STORED_PERCENT_TOLERANCE = Decimal("0.0001")


# =============================================================================
# Builders
# =============================================================================


def _payee_from_percent(role, member_id, percent: Decimal, pool: Amount) -> Payee:
    percent = Percent.clamped(percent)
    return Payee(role=role, member_id=member_id, percent=percent, amount=percent.of(pool))


def _payee_from_amount(role, member_id, amount: Decimal, pool: Amount) -> Payee:
    amount = Amount.clamped(amount, pool)
    return Payee(role=role, member_id=member_id, percent=amount.percent_of(pool), amount=amount)


def _split_evenly(total: Decimal, count: int) -> list[Decimal]:
    """Split total into count equal shares; the last share takes the rounding residue."""
    if count <= 0:
        return []
    share = total / count
    shares = [share] * (count - 1)
    shares.append(total - sum(shares, ZERO))
    return shares


def _split_proportionally(total: Decimal, weights: list[Decimal]) -> list[Decimal]:
    """Split total in proportion to weights; even split when the weights are all zero."""
    weight = sum(weights, ZERO)
    if weight <= 0:
        return _split_evenly(total, len(weights))
    shares = [total * w / weight for w in weights[:-1]]
    shares.append(total - sum(shares, ZERO))
    return shares


def _from_percents(ledger: AllocationLedger, top: dict, members: list, pool: Amount | None = None) -> AllocationLedger:
    """Rebuild ledger from top-level and member percents; amounts are derived."""
    if pool is None:
        pool = ledger.pool
    guide = _payee_from_percent(PayeeRole.GUIDE, ledger.guide.member_id, top[PayeeRole.GUIDE], pool)
    assistant = None
    if ledger.assistant is not None:
        assistant = _payee_from_percent(
            PayeeRole.ASSISTANT, ledger.assistant.member_id, top[PayeeRole.ASSISTANT], pool
        )
    op_percent = Percent.clamped(top[PayeeRole.OP])
    op_pool = OpPool(
        percent=op_percent,
        amount=op_percent.of(pool),
        members=[
            _payee_from_percent(PayeeRole.OP, member_id, percent, pool)
            for member_id, percent in members
        ],
    )
    return replace(ledger, pool=pool, guide=guide, assistant=assistant, op_pool=op_pool).check_invariants()


def _from_amounts(ledger: AllocationLedger, top: dict, members: list) -> AllocationLedger:
    """Rebuild ledger from top-level and member amounts; percents are derived."""
    pool = ledger.pool
    guide = _payee_from_amount(PayeeRole.GUIDE, ledger.guide.member_id, top[PayeeRole.GUIDE], pool)
    assistant = None
    if ledger.assistant is not None:
        assistant = _payee_from_amount(
            PayeeRole.ASSISTANT, ledger.assistant.member_id, top[PayeeRole.ASSISTANT], pool
        )
    op_amount = Amount.clamped(top[PayeeRole.OP], pool)
    op_pool = OpPool(
        percent=op_amount.percent_of(pool),
        amount=op_amount,
        members=[
            _payee_from_amount(PayeeRole.OP, member_id, amount, pool)
            for member_id, amount in members
        ],
    )
    return replace(ledger, guide=guide, assistant=assistant, op_pool=op_pool).check_invariants()


def _top_role(ledger: AllocationLedger, role) -> PayeeRole:
    try:
        role = PayeeRole(role)
    except ValueError:
        raise ValidationError(f"Unknown payee role {role!r}")
    if role == PayeeRole.ASSISTANT and ledger.assistant is None:
        raise ValidationError(f"Tour '{ledger.tour_id}' has no assistant")
    return role


def _require_member(ledger: AllocationLedger, member_id: str) -> Payee:
    payee = ledger.op_pool.member(member_id)
    if payee is None:
        raise ValidationError(f"'{member_id}' is not an OP member of tour '{ledger.tour_id}'")
    return payee


def _split_scaled(values: list[Decimal], old_total: Decimal, new_total: Decimal) -> list[Decimal]:
    """Resize shares totalling old_total so they total new_total, keeping ratios."""
    if not values:
        return []
    if old_total <= 0:
        return _split_evenly(new_total, len(values))
    return _split_proportionally(new_total, values)


# =============================================================================
# Initialization and pool changes
# =============================================================================


def initialize(tour: TourInstance, pool: Number | Amount, *, deduct_card_fee: bool = False) -> AllocationLedger:
    """Build the default split for tour.

    With an assistant: guide 45%, assistant 45%, OP 10%.
    Without: guide 90%, OP 10%. The OP sub-pool starts with no members.

    Deterministic: the same tour and pool always give an equal ledger.
    """
    pool = pool if isinstance(pool, Amount) else Amount(pool)
    if tour.has_assistant:
        guide_percent = GUIDE_PERCENT_WITH_ASSISTANT
        assistant = _payee_from_percent(PayeeRole.ASSISTANT, tour.assistant_id, ASSISTANT_PERCENT, pool)
    else:
        guide_percent = GUIDE_PERCENT_SOLO
        assistant = None

    op_percent = Percent(OP_PERCENT)
    return AllocationLedger(
        tour_id=tour.id,
        pool=pool,
        guide=_payee_from_percent(PayeeRole.GUIDE, tour.guide_id, guide_percent, pool),
        assistant=assistant,
        op_pool=OpPool(percent=op_percent, amount=op_percent.of(pool), members=()),
        deduct_card_fee=deduct_card_fee,
    ).check_invariants()


def restore_ledger(
    tour_id: str,
    pool: Number | Amount,
    *,
    guide_id: str | None,
    guide_percent: Number,
    assistant_id: str | None,
    assistant_percent: Number | None,
    op_percent: Number,
    members: Iterable[tuple],
    deduct_card_fee: bool = False,
) -> AllocationLedger | None:
    """Rebuild a ledger from stored percents.

    Stored percents are rounded, so the guide absorbs the top-level
    residue and the last OP member absorbs the member residue; amounts
    are re-derived from percents.

    Returns None when the stored percents do not total 100 within
    STORED_PERCENT_TOLERANCE. Members whose percents do not total the
    OP percent are dropped (treated as no OP members).
    """
    pool = pool if isinstance(pool, Amount) else Amount(pool)
    op_value = to_decimal(op_percent, "op_percent")
    assistant_value = None if assistant_percent is None else to_decimal(assistant_percent, "assistant_percent")
    guide_value = to_decimal(guide_percent, "guide_percent")

    stored_total = guide_value + op_value + (assistant_value or ZERO)
    if abs(stored_total - HUNDRED) > STORED_PERCENT_TOLERANCE:
        logger.warning(
            f"Discarding stored split for tour {tour_id}: percents total {stored_total}"
        )
        return None

    members = [(str(member_id), to_decimal(percent, "op member percent")) for member_id, percent in members]
    member_total = sum((percent for _, percent in members), ZERO)
    if members and abs(member_total - op_value) > STORED_PERCENT_TOLERANCE:
        logger.warning(
            f"Ignoring incomplete OP shares for tour {tour_id}: "
            f"members hold {member_total}%, OP sub-pool is {op_value}%"
        )
        members = []
    if members:
        residue = op_value - sum((percent for _, percent in members[:-1]), ZERO)
        members[-1] = (members[-1][0], residue)

    top = {PayeeRole.OP: op_value}
    if assistant_value is not None:
        top[PayeeRole.ASSISTANT] = assistant_value
    top[PayeeRole.GUIDE] = HUNDRED - op_value - (assistant_value or ZERO)

    skeleton = AllocationLedger(
        tour_id=str(tour_id),
        pool=pool,
        guide=Payee(PayeeRole.GUIDE, guide_id, Percent.zero(), Amount.zero()),
        assistant=(
            Payee(PayeeRole.ASSISTANT, assistant_id, Percent.zero(), Amount.zero())
            if assistant_value is not None else None
        ),
        op_pool=OpPool(percent=Percent.zero(), amount=Amount.zero()),
        deduct_card_fee=deduct_card_fee,
    )
    return _from_percents(skeleton, top, members)


def set_pool(ledger: AllocationLedger, new_pool: Number | Amount) -> AllocationLedger:
    """Recompute every amount for a new pool, keeping all percents."""
    new_pool = new_pool if isinstance(new_pool, Amount) else Amount(new_pool)
    top = {role: percent.value for role, percent, _ in ledger.top_level}
    members = [(m.member_id, m.percent.value) for m in ledger.op_pool.members]
    return _from_percents(ledger, top, members, pool=new_pool)


# =============================================================================
# Top-level edits
# =============================================================================


def set_top_percent(ledger: AllocationLedger, role, new_percent: Number) -> AllocationLedger:
    """Set one top-level percent; the others absorb the remainder proportionally.

    new_percent is clamped to [0, 100]. OP members keep their ratios
    within the resized OP sub-pool.

    Raises:
        ValidationError: If role is unknown or new_percent is not a finite number
    """
    role = _top_role(ledger, role)
    requested = to_decimal(new_percent, "percent")
    new = clamp(requested, ZERO, HUNDRED)
    if new != requested:
        logger.debug(f"Clamped {role} percent {requested} to {new} on tour {ledger.tour_id}")

    current = {r: percent.value for r, percent, _ in ledger.top_level}
    others = [r for r in current if r != role]
    top = {role: new}
    for other, share in zip(others, _split_proportionally(HUNDRED - new, [current[r] for r in others])):
        top[other] = share

    members = ledger.op_pool.members
    member_percents = _split_scaled(
        [m.percent.value for m in members], current[PayeeRole.OP], top[PayeeRole.OP]
    )
    return _from_percents(ledger, top, list(zip(ledger.op_pool.member_ids, member_percents)))


def set_top_amount(ledger: AllocationLedger, role, new_amount: Number) -> AllocationLedger:
    """Set one top-level amount and rebalance in dollar space.

    new_amount is clamped to [0, pool]. If the substituted amounts exceed
    the pool, all top-level amounts shrink by the same factor so they total
    the pool exactly. If they fall short, the other parts absorb the
    shortfall in proportion to their current amounts. Percents are derived.

    Raises:
        ValidationError: If role is unknown or new_amount is not a finite number
    """
    role = _top_role(ledger, role)
    requested = to_decimal(new_amount, "amount")
    pool = ledger.pool.value
    if pool == 0:
        return ledger
    new = clamp(requested, ZERO, pool)
    if new != requested:
        logger.debug(f"Clamped {role} amount {requested} to {new} on tour {ledger.tour_id}")

    current = {r: amount.value for r, _, amount in ledger.top_level}
    top = dict(current)
    top[role] = new
    total = sum(top.values(), ZERO)

    if total > pool:
        factor = pool / total
        top = {r: amount * factor for r, amount in top.items()}
    elif total < pool:
        others = [r for r in top if r != role]
        shares = _split_proportionally(pool - total, [current[r] for r in others])
        for other, share in zip(others, shares):
            top[other] += share

    members = ledger.op_pool.members
    member_amounts = _split_scaled(
        [m.amount.value for m in members], current[PayeeRole.OP], top[PayeeRole.OP]
    )
    return _from_amounts(ledger, top, list(zip(ledger.op_pool.member_ids, member_amounts)))


# =============================================================================
# OP sub-pool edits
# =============================================================================


def toggle_op_member(ledger: AllocationLedger, member_id: str, included: bool) -> AllocationLedger:
    """Add or remove an OP member and re-split the OP sub-pool evenly.

    The sub-pool's percent and amount do not change. Removing the last
    member leaves the share reserved but unassigned until a member is added.
    Toggling to the current state returns the ledger unchanged.
    """
    if not member_id:
        raise ValidationError("member_id is required")
    member_id = str(member_id)
    member_ids = ledger.op_pool.member_ids
    present = member_id in member_ids
    if bool(included) == present:
        return ledger

    if included:
        member_ids = member_ids + [member_id]
    else:
        member_ids = [m for m in member_ids if m != member_id]

    top = {role: percent.value for role, percent, _ in ledger.top_level}
    shares = _split_evenly(ledger.op_pool.percent.value, len(member_ids))
    return _from_percents(ledger, top, list(zip(member_ids, shares)))


def set_op_member_percent(ledger: AllocationLedger, member_id: str, new_percent: Number) -> AllocationLedger:
    """Set one OP member's percent; the other members split the rest evenly.

    new_percent is clamped to [0, OP sub-pool percent]. A sole member
    always holds the whole sub-pool.

    Raises:
        ValidationError: If member_id is not an OP member or new_percent is not a finite number
    """
    _require_member(ledger, member_id)
    requested = to_decimal(new_percent, "percent")
    op_percent = ledger.op_pool.percent.value
    new = clamp(requested, ZERO, op_percent)
    if new != requested:
        logger.debug(f"Clamped OP member {member_id} percent {requested} to {new}")

    others = [m for m in ledger.op_pool.member_ids if m != member_id]
    if not others:
        return ledger

    shares = dict(zip(others, _split_evenly(op_percent - new, len(others))))
    shares[member_id] = new
    top = {role: percent.value for role, percent, _ in ledger.top_level}
    return _from_percents(ledger, top, [(m, shares[m]) for m in ledger.op_pool.member_ids])


def set_op_member_amount(ledger: AllocationLedger, member_id: str, new_amount: Number) -> AllocationLedger:
    """Set one OP member's amount; the other members split the rest evenly.

    new_amount is clamped to [0, OP sub-pool amount]; percents are derived.

    Raises:
        ValidationError: If member_id is not an OP member or new_amount is not a finite number
    """
    _require_member(ledger, member_id)
    requested = to_decimal(new_amount, "amount")
    if ledger.pool.value == 0:
        return ledger
    op_amount = ledger.op_pool.amount.value
    new = clamp(requested, ZERO, op_amount)
    if new != requested:
        logger.debug(f"Clamped OP member {member_id} amount {requested} to {new}")

    others = [m for m in ledger.op_pool.member_ids if m != member_id]
    if not others:
        return ledger

    shares = dict(zip(others, _split_evenly(op_amount - new, len(others))))
    shares[member_id] = new
    top = {role: amount.value for role, _, amount in ledger.top_level}
    return _from_amounts(ledger, top, [(m, shares[m]) for m in ledger.op_pool.member_ids])


# =============================================================================
# Pool derivation and OP eligibility
# =============================================================================


def prepaid_pool(tour: TourInstance, reservations: Iterable[ReservationSnapshot]) -> Amount:
    """Total prepaid gratuity of the reservations rostered on tour."""
    total = sum(
        (
            reservation.prepaid_tip.value
            for reservation in reservations
            if tour.holds(reservation.id) and reservation.prepaid_tip.value > 0
        ),
        ZERO,
    )
    return Amount(total)


def shareable_pool(gross: Number | Amount, *, deduct_card_fee: bool) -> Amount:
    """The part of the prepaid gratuity that gets split.

    With deduct_card_fee the card-processing fee (TOUROPS_CARD_FEE_RATE)
    comes off first. Rounded half-up to cents.
    """
    gross = gross if isinstance(gross, Amount) else Amount(gross)
    value = gross.value
    if deduct_card_fee:
        value = value * (1 - conf.get_card_fee_rate())
    return Amount(value.quantize(CENT, rounding=ROUND_HALF_UP))


def _months_before(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def eligible_op_members(staff: Iterable[StaffMember], *, as_of: date | None = None) -> list[StaffMember]:
    """Staff who may receive an OP share.

    Active staff in one of TOUROPS_OP_POSITIONS, excluding anyone hired
    within the last TOUROPS_OP_PROBATION_MONTHS months. A missing hire
    date counts as past probation. Sorted by name.
    """
    if as_of is None:
        as_of = timezone.localdate()
    positions = conf.get_op_positions()
    probation_months = conf.get_op_probation_months()
    cutoff = _months_before(as_of, probation_months)

    def past_probation(member: StaffMember) -> bool:
        if probation_months == 0 or member.hire_date is None:
            return True
        return member.hire_date < cutoff

    eligible = [
        member for member in staff
        if member.is_active
        and (member.position or "").strip().lower() in positions
        and past_probation(member)
    ]
    return sorted(eligible, key=lambda member: (member.name, member.member_id))
