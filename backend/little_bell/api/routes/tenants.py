"""Tenant registration endpoint."""
from fastapi import APIRouter, Depends, status

from little_bell.dependencies import get_store
from little_bell.schemas.tenant import TenantCreate, TenantRead
from little_bell.store import Store

router = APIRouter()


@router.post("/tenants", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
async def register_tenant(
    payload: TenantCreate,
    store: Store = Depends(get_store),
) -> TenantRead:
    """Register a tenant explicitly. Registering an existing id returns it unchanged."""
    tenant = await store.create_tenant(payload.id, payload.name)
    return TenantRead.model_validate(tenant)
