from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Mapping, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from registration_api.errors import (
    DuplicateRegistration,
    InvalidRegistration,
    OrderMismatch,
    PaymentAlreadyVerified,
    PaymentSignatureInvalid,
    StoreError,
    TeamNotFound,
)
from registration_api.models.registration import Registration
from registration_api.models.team import PaymentStatus, Team
from registration_api.schemas import (
    CreateOrderRequest,
    MemberIn,
    RegistrationOrder,
    RegistrationRequest,
    VerificationResult,
    VerifiedMemberIn,
    VerifyPaymentRequest,
)
from registration_api.services.payment_gateway import Order, RazorpayGateway

_LOGGER = logging.getLogger(__name__)

DEFAULT_CHARGE_PER_MEMBER = Decimal("100")
DEFAULT_CURRENCY = "INR"


# -------------------------------------------------------------------
# Pricing
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Pricing:
    charge_per_member: Decimal = DEFAULT_CHARGE_PER_MEMBER
    currency: str = DEFAULT_CURRENCY

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "Pricing":
        raw = env.get("CHARGE_PER_MEMBER")
        try:
            charge = Decimal(raw) if raw else DEFAULT_CHARGE_PER_MEMBER
        except InvalidOperation:
            _LOGGER.warning("Ignoring invalid CHARGE_PER_MEMBER=%r", raw)
            charge = DEFAULT_CHARGE_PER_MEMBER
        if not charge.is_finite() or charge <= 0:
            _LOGGER.warning("Ignoring non-positive CHARGE_PER_MEMBER=%r", raw)
            charge = DEFAULT_CHARGE_PER_MEMBER
        currency = (env.get("PAYMENT_CURRENCY") or DEFAULT_CURRENCY).strip().upper()
        return cls(charge_per_member=charge, currency=currency)


_pricing: Optional[Pricing] = None


def get_pricing() -> Pricing:
    """FastAPI dependency returning pricing read once from the environment."""

    global _pricing
    if _pricing is None:
        _pricing = Pricing.from_env(os.environ)
    return _pricing


def minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a major-unit amount (rupees) to integer minor units (paise), rounding half-up."""

    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quote_amount(member_count: int, charge_per_member: Decimal) -> int:
    return minor_units(Decimal(member_count) * charge_per_member)


def new_receipt(prefix: str = "rcpt") -> str:
    return f"{prefix}_{int(time.time() * 1000)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------------------------------------------------
# Order initiation
# -------------------------------------------------------------------

async def ensure_registration_available(db: AsyncSession, request: RegistrationRequest) -> None:
    """Team names and member emails must not already be taken."""

    exists = await db.scalar(select(Team.id).where(Team.team_name == request.team_name))
    if exists:
        raise InvalidRegistration("Team name already exists")

    emails = [member.email for member in request.members]
    taken = (
        await db.execute(select(Registration.email).where(Registration.email.in_(emails)))
    ).scalars().all()
    if taken:
        raise InvalidRegistration("Some emails are already registered", existingEmails=sorted(taken))


async def initiate_registration(
    db: AsyncSession,
    gateway: RazorpayGateway,
    request: RegistrationRequest,
    pricing: Pricing,
) -> RegistrationOrder:
    """Create the gateway order, then record the team as Initiated against it."""

    await ensure_registration_available(db, request)

    member_count = len(request.members)
    amount = quote_amount(member_count, pricing.charge_per_member)
    order = await gateway.create_order(amount, pricing.currency, new_receipt())

    team = Team(
        team_name=request.team_name,
        domain=request.domain.value,
        member_count=member_count,
        payment_status=PaymentStatus.initiated.value,
        razorpay_order_id=order.id,
        amount_in_paise=amount,
        payment_initiated_at=_utcnow(),
    )
    db.add(team)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        _LOGGER.error(
            "Team insert failed after order %s was created; the order is orphaned (team_name=%r)",
            order.id,
            request.team_name,
            exc_info=True,
        )
        raise StoreError() from exc

    _LOGGER.info("Team %s (%r) initiated with order %s for %s paise", team.id, team.team_name, order.id, amount)
    return RegistrationOrder(
        team_id=team.id,
        order_id=order.id,
        amount=amount,
        currency=order.currency,
        charge_per_member=pricing.charge_per_member,
    )


async def create_standalone_order(gateway: RazorpayGateway, request: CreateOrderRequest) -> Order:
    """Create an order for an arbitrary major-unit amount; nothing is stored locally."""

    amount = minor_units(request.amount)
    if amount <= 0:
        raise InvalidRegistration("amount must be a positive number.")
    return await gateway.create_order(amount, request.currency, request.receipt or new_receipt())


# -------------------------------------------------------------------
# Payment verification & finalization
# -------------------------------------------------------------------

async def mark_payment_completed(db: AsyncSession, team_id: int, order_id: str, payment_id: str) -> bool:
    """Compare-and-set Initiated -> Completed; True only if this call changed the row."""

    result = await db.execute(
        update(Team)
        .where(
            Team.id == team_id,
            Team.razorpay_order_id == order_id,
            Team.payment_status == PaymentStatus.initiated.value,
        )
        .values(
            payment_status=PaymentStatus.completed.value,
            razorpay_payment_id=payment_id,
            payment_verified_at=_utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    return True


async def _members_taken_elsewhere(
    db: AsyncSession, team_id: int, members: Sequence[VerifiedMemberIn]
) -> list[str]:
    emails = [member.email for member in members]
    rolls = [member.roll_number for member in members]
    rows = (
        await db.execute(
            select(Registration.email, Registration.roll_number).where(
                Registration.team_id != team_id,
                or_(Registration.email.in_(emails), Registration.roll_number.in_(rolls)),
            )
        )
    ).all()
    taken = set()
    for email, roll_number in rows:
        if email in emails:
            taken.add(email)
        if roll_number in rolls:
            taken.add(roll_number)
    return sorted(taken)


def _registration_rows(team_id: int, members: Sequence[MemberIn]) -> list[Registration]:
    return [
        Registration(
            team_id=team_id,
            name=member.name,
            email=member.email,
            phone=member.phone,
            college=member.college,
            role=member.role.value,
            roll_number=getattr(member, "roll_number", None),
        )
        for member in members
    ]


async def verify_and_finalize(
    db: AsyncSession,
    gateway: RazorpayGateway,
    request: VerifyPaymentRequest,
) -> VerificationResult:
    # 1) The callback must have been signed with our key
    if not gateway.verify_signature(request.order_id, request.payment_id, request.signature):
        _LOGGER.warning(
            "Payment signature mismatch for team %s order %s; possible tampering",
            request.team_id,
            request.order_id,
        )
        raise PaymentSignatureInvalid()

    # 2) Team must exist
    team = await db.get(Team, request.team_id)
    if team is None:
        raise TeamNotFound()
    team_id = team.id

    # 3) A valid signature for one order cannot finalize another team
    if team.razorpay_order_id != request.order_id:
        _LOGGER.warning(
            "Order mismatch for team %s: stored %s, supplied %s",
            team_id,
            team.razorpay_order_id,
            request.order_id,
        )
        raise OrderMismatch()

    # 4) Only the members that were paid for
    if len(request.members) != team.member_count:
        raise InvalidRegistration(
            f"Team was registered with {team.member_count} member(s) but {len(request.members)} were submitted"
        )

    taken = await _members_taken_elsewhere(db, team_id, request.members)
    if taken:
        raise DuplicateRegistration("Some members are already registered", conflicts=taken)

    # 5) Exactly-once transition
    if not await mark_payment_completed(db, team_id, request.order_id, request.payment_id):
        _LOGGER.info("Duplicate verification for team %s (payment %s) ignored", team_id, request.payment_id)
        raise PaymentAlreadyVerified()

    # 6) Members only after the transition was ours
    db.add_all(_registration_rows(team_id, request.members))
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        _LOGGER.error(
            "Team %s is Completed (payment %s) but member insert hit a unique constraint; needs manual reconciliation",
            team_id,
            request.payment_id,
        )
        raise DuplicateRegistration() from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        _LOGGER.error(
            "Team %s is Completed (payment %s) but member insert failed; needs manual reconciliation",
            team_id,
            request.payment_id,
            exc_info=True,
        )
        raise StoreError() from exc

    _LOGGER.info("Team %s payment %s verified; %s members registered", team_id, request.payment_id, len(request.members))
    return VerificationResult(
        team_id=team_id,
        payment_status=PaymentStatus.completed,
        payment_id=request.payment_id,
        order_id=request.order_id,
        member_count=len(request.members),
    )
