# registration_api/schemas.py
# ------------------------------------------------------------
# Pydantic v2 schemas, organized by endpoint
# ------------------------------------------------------------
from __future__ import annotations

from decimal import Decimal
import math
import re
from typing import List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from registration_api.models.registration import MemberRole
from registration_api.models.team import Domain, PaymentStatus

MIN_MEMBERS = 1
MAX_MEMBERS = 5

_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_SCRIPT_TAG_RE = re.compile(r"<\s*/?\s*script", re.IGNORECASE)
_PHONE_RE = re.compile(r"^\+?[0-9][0-9 \-]{6,18}[0-9]$")


def _sanitize_single_line_text(value: str | None, *, allow_empty: bool = False) -> str | None:
    if value is None:
        return value
    if not isinstance(value, str):
        raise ValueError("Expected string input")
    cleaned = _CONTROL_CHAR_RE.sub("", value).strip()
    if not allow_empty and not cleaned:
        raise ValueError("Value cannot be empty")
    if any(ch in {"\n", "\r"} for ch in cleaned):
        raise ValueError("Value must be a single line of text")
    if "<" in cleaned or ">" in cleaned:
        raise ValueError("HTML tags are not allowed in this field")
    if _SCRIPT_TAG_RE.search(cleaned):
        raise ValueError("Script tags are not allowed")
    return cleaned


def _display_amount(value: Decimal) -> int | float:
    return int(value) if value == value.to_integral_value() else float(value)


# ============================================================
# Members
# ============================================================

class MemberIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(min_length=8, max_length=20)
    college: str = Field(min_length=1, max_length=200)
    role: MemberRole

    @field_validator("name", "college", mode="before")
    @classmethod
    def _clean_text(cls, value: str) -> str:
        return _sanitize_single_line_text(value)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("phone", mode="before")
    @classmethod
    def _clean_phone(cls, value):
        if isinstance(value, int):
            value = str(value)
        cleaned = _sanitize_single_line_text(value)
        if not _PHONE_RE.match(cleaned):
            raise ValueError("Phone number must contain only digits, spaces, dashes and an optional leading +")
        return cleaned


class VerifiedMemberIn(MemberIn):
    roll_number: str = Field(
        min_length=1,
        max_length=50,
        validation_alias=AliasChoices("rollNumber", "roll_number"),
    )

    @field_validator("roll_number", mode="before")
    @classmethod
    def _clean_roll_number(cls, value):
        if isinstance(value, int):
            value = str(value)
        cleaned = _sanitize_single_line_text(value)
        return cleaned.upper() if cleaned else cleaned


def _check_team_composition(members: List[MemberIn]) -> None:
    leads = sum(1 for member in members if member.role == MemberRole.team_lead)
    if leads == 0:
        raise ValueError("Team must have exactly one Team Lead")
    if leads > 1:
        raise ValueError("Only one Team Lead is allowed per team")

    seen: set[str] = set()
    for member in members:
        if member.email in seen:
            raise ValueError(f"Duplicate email found: {member.email}")
        seen.add(member.email)


# ============================================================
# Registration / order initiation
# ============================================================

class RegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_name: str = Field(alias="teamName", min_length=1, max_length=100)
    domain: Domain
    members: List[MemberIn] = Field(min_length=MIN_MEMBERS, max_length=MAX_MEMBERS)

    @field_validator("team_name", mode="before")
    @classmethod
    def _clean_team_name(cls, value: str) -> str:
        return _sanitize_single_line_text(value)

    @model_validator(mode="after")
    def _check_members(self) -> "RegistrationRequest":
        _check_team_composition(self.members)
        return self


class RegistrationOrder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: int = Field(serialization_alias="teamId")
    order_id: str = Field(serialization_alias="orderId")
    amount: int
    currency: str
    charge_per_member: Decimal = Field(serialization_alias="chargePerMember")

    @field_serializer("charge_per_member")
    def _serialize_charge(self, value: Decimal) -> int | float:
        return _display_amount(value)


# ============================================================
# Payment verification
# ============================================================

class VerifyPaymentRequest(BaseModel):
    team_id: int = Field(gt=0, validation_alias=AliasChoices("teamId", "team_id"))
    payment_id: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("paymentId", "razorpayPaymentId", "razorpay_payment_id"),
    )
    order_id: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("orderId", "razorpayOrderId", "razorpay_order_id"),
    )
    signature: str = Field(
        min_length=1,
        max_length=256,
        validation_alias=AliasChoices("signature", "razorpaySignature", "razorpay_signature"),
    )
    members: List[VerifiedMemberIn] = Field(min_length=MIN_MEMBERS, max_length=MAX_MEMBERS)

    @field_validator("payment_id", "order_id", "signature", mode="before")
    @classmethod
    def _clean_identifiers(cls, value):
        return _sanitize_single_line_text(value)

    @model_validator(mode="after")
    def _check_members(self) -> "VerifyPaymentRequest":
        _check_team_composition(self.members)
        rolls: set[str] = set()
        for member in self.members:
            key = member.roll_number
            if key in rolls:
                raise ValueError(f"Duplicate roll number found: {member.roll_number}")
            rolls.add(key)
        return self


class VerificationResult(BaseModel):
    team_id: int = Field(serialization_alias="teamId")
    payment_status: PaymentStatus = Field(serialization_alias="paymentStatus")
    payment_id: str = Field(serialization_alias="paymentId")
    order_id: str = Field(serialization_alias="orderId")
    member_count: int = Field(serialization_alias="memberCount")


# ============================================================
# Standalone order creation
# ============================================================

class CreateOrderRequest(BaseModel):
    amount: Decimal = Field(gt=0, description="Amount in major currency units (e.g. rupees)")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    receipt: Optional[str] = Field(default=None, max_length=40)

    @field_validator("amount", mode="before")
    @classmethod
    def _finite_amount(cls, value):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("amount must be a positive number")
        return value

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("receipt", mode="before")
    @classmethod
    def _clean_receipt(cls, value: Optional[str]) -> Optional[str]:
        return _sanitize_single_line_text(value) if value is not None else value
