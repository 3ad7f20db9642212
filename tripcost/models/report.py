from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from .constants import ReportStatus

MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class ReportOut(BaseModel):
    id: int
    owner_id: str
    month: int
    year: int
    total_distance: float
    total_expense_amount: float
    reimbursed_amount: float
    pending_amount: float
    status: ReportStatus
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    comments: Optional[str] = None
    reimbursement_review_required: bool = False
    expense_ids: List[int] = []
    version: int
    created_at: datetime
    updated_at: datetime


class StatusChangeIn(BaseModel):
    status: ReportStatus
    reimbursed_amount: Optional[float] = Field(None, ge=0)
    comments: Optional[str] = None

    @field_validator("comments")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None


class ReimbursementIn(BaseModel):
    reimbursed_amount: float = Field(..., ge=0)
    comments: Optional[str] = None


class QuarterlyIn(BaseModel):
    quarter: int = Field(..., ge=1, le=4)
    year: int = Field(..., ge=2000, le=2100)
    rebuild: bool = False


class QuarterlyOut(BaseModel):
    id: int
    owner_id: str
    quarter: int
    year: int
    total_distance: float
    total_expense_amount: float
    reimbursed_amount: float
    pending_amount: float
    status: ReportStatus
    comments: Optional[str] = None
    expense_ids: List[int] = []
    source_report_ids: List[int] = []
    stale: bool = False
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def quarter_name(self) -> str:
        return f"Q{self.quarter}"

    @computed_field
    @property
    def quarter_period(self) -> str:
        first = (self.quarter - 1) * 3
        return f"{MONTH_ABBR[first]} - {MONTH_ABBR[first + 2]} {self.year}"


class MonthlySummaryRow(BaseModel):
    id: int
    month: int
    total_expense_amount: float
    reimbursed_amount: float
    pending_amount: float
    status: ReportStatus


class YearlySummary(BaseModel):
    owner_id: str
    year: int
    total_amount: float
    reimbursed_amount: float
    pending_amount: float
    monthly_reports: List[MonthlySummaryRow]


class ConsistencyReport(BaseModel):
    report_id: int
    stored_distance: float
    stored_amount: float
    computed_distance: float
    computed_amount: float
    consistent: bool