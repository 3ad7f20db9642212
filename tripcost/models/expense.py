from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import ExpenseStatus
from .category import BudgetUsage

# Supplied total_cost may differ from distance * rate by rounding only.
TOTAL_COST_TOLERANCE = 0.01


class ExpenseIn(BaseModel):
    category_id: int
    distance: float = Field(..., gt=0, description="Distance in kilometers")
    rate: float = Field(..., gt=0, description="Cost per kilometer")
    total_cost: Optional[float] = Field(
        None, gt=0, description="Derived from distance * rate; optional echo"
    )
    journey_date: date
    notes: Optional[str] = None
    starting_point: Optional[str] = None
    destination_point: Optional[str] = None

    @field_validator("journey_date")
    @classmethod
    def date_not_future(cls, v: date) -> date:
        if v > date.today():
            raise ValueError("journey_date cannot be in the future")
        return v

    @field_validator("starting_point", "destination_point", "notes")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None

    @model_validator(mode="after")
    def total_cost_matches(self) -> "ExpenseIn":
        if self.total_cost is not None:
            expected = self.distance * self.rate
            if abs(self.total_cost - expected) > TOTAL_COST_TOLERANCE:
                raise ValueError(
                    "total_cost must equal distance * rate; omit it to have it computed"
                )
        return self


class ExpenseUpdateIn(BaseModel):
    """Partial update model.

    All fields optional; at least one must be provided. total_cost is never
    accepted here: it follows distance and rate.
    """

    category_id: Optional[int] = None
    distance: Optional[float] = Field(None, gt=0)
    rate: Optional[float] = Field(None, gt=0)
    journey_date: Optional[date] = None
    notes: Optional[str] = None
    starting_point: Optional[str] = None
    destination_point: Optional[str] = None
    status: Optional[ExpenseStatus] = None

    @field_validator("journey_date")
    @classmethod
    def date_not_future(cls, v: Optional[date]) -> Optional[date]:
        if v is not None and v > date.today():
            raise ValueError("journey_date cannot be in the future")
        return v

    @model_validator(mode="after")
    def at_least_one(self) -> "ExpenseUpdateIn":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided for update")
        return self


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    category_id: int
    distance: float
    rate: float
    total_cost: float
    journey_date: date
    status: ExpenseStatus
    notes: Optional[str] = None
    starting_point: Optional[str] = None
    destination_point: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ExpenseMutationResult(BaseModel):
    expense: ExpenseOut
    budget_alerts: Optional[List[BudgetUsage]] = None
