# registration_api/models/registration.py
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from registration_api.database import Base


class MemberRole(str, Enum):
    team_lead = "Team Lead"
    member = "Member"


class Registration(Base):
    """One row per team member, written only after the team's payment is verified."""

    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(254), unique=True, nullable=False)
    phone = Column(String(20), nullable=False)
    college = Column(String(200), nullable=False)
    role = Column(String(16), nullable=False, default=MemberRole.member.value)
    roll_number = Column(String(50), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    team = relationship("Team", back_populates="members")

    def __repr__(self) -> str:
        return f"<Registration id={self.id} team={self.team_id} email={self.email!r} role={self.role}>"
