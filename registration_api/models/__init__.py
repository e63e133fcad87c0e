"""ORM models; importing this package registers every table with ``Base``."""

from .registration import MemberRole, Registration
from .team import Domain, PaymentStatus, Team

__all__ = ["Domain", "MemberRole", "PaymentStatus", "Registration", "Team"]
