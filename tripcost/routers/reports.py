from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from tripcost.core.deps import get_quarterly, get_workflow
from tripcost.core.security import Actor, get_actor
from tripcost.models.report import (
    ConsistencyReport,
    QuarterlyIn,
    QuarterlyOut,
    ReimbursementIn,
    ReportOut,
    StatusChangeIn,
    YearlySummary,
)
from tripcost.services.quarterly import QuarterlyRollupService
from tripcost.services.report_workflow import ReportWorkflow

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/", response_model=List[ReportOut], summary="List monthly reports")
def list_reports(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    owner_id: Optional[str] = Query(None, description="Admins may list any owner"),
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.list_for_owner(actor, owner_id or actor.user_id, year)


@router.get(
    "/monthly/{month}/{year}",
    response_model=ReportOut,
    summary="Get the report for a month",
)
def report_by_month(
    month: int = Path(..., ge=1, le=12),
    year: int = Path(..., ge=2000, le=2100),
    owner_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.by_period(actor, owner_id or actor.user_id, month, year)


@router.get(
    "/yearly/{year}",
    response_model=YearlySummary,
    summary="Yearly totals across monthly reports",
)
def yearly_summary(
    year: int,
    owner_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.yearly_summary(actor, owner_id or actor.user_id, year)


@router.post(
    "/quarterly",
    response_model=QuarterlyOut,
    status_code=201,
    summary="Build a quarterly snapshot from monthly reports",
)
def create_quarterly(
    payload: QuarterlyIn,
    owner_id: Optional[str] = Query(None, description="Admins may build for any owner"),
    actor: Actor = Depends(get_actor),
    quarterly: QuarterlyRollupService = Depends(get_quarterly),
):
    return quarterly.build(
        actor, payload.quarter, payload.year, owner_id=owner_id, rebuild=payload.rebuild
    )


@router.get(
    "/quarterly/{quarter}/{year}",
    response_model=QuarterlyOut,
    summary="Get the quarterly snapshot for a quarter",
)
def quarterly_by_period(
    quarter: int = Path(..., ge=1, le=4),
    year: int = Path(..., ge=2000, le=2100),
    owner_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    quarterly: QuarterlyRollupService = Depends(get_quarterly),
):
    return quarterly.find(actor, owner_id or actor.user_id, quarter, year)


@router.get(
    "/quarterly/{quarterly_id}",
    response_model=QuarterlyOut,
    summary="Get a quarterly snapshot",
)
def get_quarterly_report(
    quarterly_id: int,
    actor: Actor = Depends(get_actor),
    quarterly: QuarterlyRollupService = Depends(get_quarterly),
):
    return quarterly.get(actor, quarterly_id)


@router.get("/{report_id}", response_model=ReportOut, summary="Get a monthly report")
def get_report(
    report_id: int,
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.get(actor, report_id)


@router.put(
    "/{report_id}/status",
    response_model=ReportOut,
    summary="Submit, approve or reject a report",
)
def update_report_status(
    report_id: int,
    payload: StatusChangeIn,
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.change_status(actor, report_id, payload)


@router.put(
    "/{report_id}/reimburse",
    response_model=ReportOut,
    summary="Adjust the reimbursed amount of an approved report",
)
def update_reimbursement(
    report_id: int,
    payload: ReimbursementIn,
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.update_reimbursement(
        actor, report_id, payload.reimbursed_amount, payload.comments
    )


@router.get(
    "/{report_id}/consistency",
    response_model=ConsistencyReport,
    summary="Compare stored totals with the referenced expenses",
)
def report_consistency(
    report_id: int,
    actor: Actor = Depends(get_actor),
    workflow: ReportWorkflow = Depends(get_workflow),
):
    return workflow.check_consistency(actor, report_id)
