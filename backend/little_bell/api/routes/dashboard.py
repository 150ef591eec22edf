"""Dashboard data endpoint."""
from fastapi import APIRouter, Depends

from little_bell.dependencies import get_aggregator
from little_bell.schemas.analytics import TenantSummary
from little_bell.services.aggregator import Aggregator

router = APIRouter()


@router.get("/{tenant_id}/dashboard", response_model=TenantSummary)
async def show_dashboard(
    tenant_id: str,
    aggregator: Aggregator = Depends(get_aggregator),
) -> TenantSummary:
    """Statistics for the tenant dashboard; rendering is left to the client."""
    return await aggregator.tenant_summary(tenant_id)
