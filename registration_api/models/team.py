# registration_api/models/team.py
from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from registration_api.database import Base


class PaymentStatus(str, Enum):
    pending = "Pending"
    initiated = "Initiated"
    completed = "Completed"
    failed = "Failed"
    refunded = "Refunded"


class Domain(str, Enum):
    web_dev = "Web Dev"
    agentic_ai = "Agentic AI"
    ui_ux = "UI/UX"


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    team_name = Column(String(100), unique=True, nullable=False)
    domain = Column(String(32), nullable=False)
    member_count = Column(Integer, nullable=False)

    # Stored as the PaymentStatus value ("Initiated", "Completed", ...)
    payment_status = Column(String(16), nullable=False, default=PaymentStatus.pending.value, index=True)
    razorpay_order_id = Column(String(64), unique=True, nullable=True)
    razorpay_payment_id = Column(String(64), nullable=True)
    amount_in_paise = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    payment_initiated_at = Column(DateTime(timezone=True), nullable=True)
    payment_verified_at = Column(DateTime(timezone=True), nullable=True)

    members = relationship(
        "Registration",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Team id={self.id} name={self.team_name!r} status={self.payment_status}>"
