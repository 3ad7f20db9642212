"""Closed enumerations for statuses, periods and roles.

Values are the wire/storage strings; compare members, never raw strings.
"""

from enum import Enum
from typing import Dict, FrozenSet


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class BudgetPeriod(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return PERIOD_MONTHS[self]


class AlertStatus(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    EXCEEDED = "exceeded"


PERIOD_MONTHS: Dict[BudgetPeriod, int] = {
    BudgetPeriod.MONTHLY: 1,
    BudgetPeriod.QUARTERLY: 3,
    BudgetPeriod.YEARLY: 12,
}

# User/admin initiated transitions. Demotion to draft is not listed: only the
# expense mutation path performs it (see FINALIZED_STATUSES).
REPORT_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.DRAFT: frozenset({ReportStatus.SUBMITTED}),
    ReportStatus.SUBMITTED: frozenset({ReportStatus.APPROVED, ReportStatus.REJECTED}),
    ReportStatus.APPROVED: frozenset(),
    ReportStatus.REJECTED: frozenset(),
}

# Statuses that fall back to draft when a member expense changes.
FINALIZED_STATUSES: FrozenSet[ReportStatus] = frozenset(
    {ReportStatus.SUBMITTED, ReportStatus.APPROVED}
)

DEFAULT_NOTIFICATION_THRESHOLD = 80
