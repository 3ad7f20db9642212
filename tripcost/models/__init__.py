"""Pydantic domain models for the field travel expense tracker."""

from .constants import (
    AlertStatus,
    BudgetPeriod,
    ExpenseStatus,
    ReportStatus,
    Role,
)  # re-export
from .category import (
    BudgetLimitIn,
    BudgetLimitOut,
    BudgetLimitUpdate,
    BudgetUsage,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    UsageSnapshotEntry,
)
from .expense import ExpenseIn, ExpenseMutationResult, ExpenseOut, ExpenseUpdateIn
from .report import QuarterlyOut, ReportOut, YearlySummary

__all__ = [
    "AlertStatus",
    "BudgetPeriod",
    "ExpenseStatus",
    "ReportStatus",
    "Role",
    "BudgetLimitIn",
    "BudgetLimitOut",
    "BudgetLimitUpdate",
    "BudgetUsage",
    "CategoryIn",
    "CategoryOut",
    "CategoryUpdate",
    "UsageSnapshotEntry",
    "ExpenseIn",
    "ExpenseMutationResult",
    "ExpenseOut",
    "ExpenseUpdateIn",
    "QuarterlyOut",
    "ReportOut",
    "YearlySummary",
]
