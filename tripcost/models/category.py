from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import AlertStatus, BudgetPeriod


class CategoryIn(BaseModel):
    name: str = Field(..., max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("name cannot be empty")
        return value.strip()


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("name cannot be empty")
        return value.strip() if value is not None else None

    @model_validator(mode="after")
    def _at_least_one(self) -> "CategoryUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        return self


class BudgetLimitIn(BaseModel):
    """Budget limit as submitted by an administrator.

    Field-level bounds are checked again by the registry so that service callers
    bypassing HTTP get the same rules.
    """

    amount: float
    period: BudgetPeriod
    start_date: date
    is_active: bool = True
    notification_threshold: Optional[int] = None


class BudgetLimitUpdate(BaseModel):
    amount: Optional[float] = None
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    is_active: Optional[bool] = None
    notification_threshold: Optional[int] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "BudgetLimitUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        return self


class BudgetLimitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    amount: float
    period: BudgetPeriod
    start_date: date
    end_date: date
    is_active: bool
    notification_threshold: int


class UsageSnapshotEntry(BaseModel):
    """Cached usage for one standard window. Informational only."""

    period: BudgetPeriod
    amount: float
    window_start: date
    window_end: date
    computed_at: datetime
    version: int


class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    budget_limits: List[BudgetLimitOut] = []
    current_usage: List[UsageSnapshotEntry] = []
    created_at: datetime
    updated_at: datetime


class BudgetUsage(BaseModel):
    """Usage of one active budget limit, with its alert status."""

    budget_id: int
    category_id: int
    period: BudgetPeriod
    start_date: date
    end_date: date
    budget_amount: float
    current_usage: float
    percent_used: float
    notification_threshold: int
    alert_status: AlertStatus

    @property
    def is_alert(self) -> bool:
        return self.alert_status is not AlertStatus.NORMAL


class UsageWindow(BaseModel):
    category_id: int
    start_date: date
    end_date: date
    usage: float
