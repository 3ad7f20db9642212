"""Internal endpoints, authenticated with the shared internal token."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header

from tripcost.core.deps import get_gateway
from tripcost.core.security import bearer_token
from tripcost.models.category import UsageSnapshotEntry
from tripcost.services.usage_events import InternalUsageGateway, UsageRefreshRequested

router = APIRouter(prefix="/internal", tags=["internal"], include_in_schema=False)


@router.post(
    "/categories/{category_id}/usage-refresh",
    response_model=List[UsageSnapshotEntry],
    summary="Recompute the cached usage snapshot of a category",
)
def refresh_usage(
    category_id: int,
    authorization: Optional[str] = Header(None),
    gateway: InternalUsageGateway = Depends(get_gateway),
):
    event = UsageRefreshRequested(
        category_id=category_id, token=bearer_token(authorization) or ""
    )
    return gateway.handle(event)
