"""Email registration and lookup endpoints."""
from typing import List

from fastapi import APIRouter, Depends, status

from little_bell.config import Settings
from little_bell.dependencies import get_app_settings, get_store
from little_bell.exceptions import NotFoundError
from little_bell.schemas.email import CreateEmailRequest, CreateEmailResponse, EmailRead
from little_bell.schemas.event import EventRead
from little_bell.services.recorder import parse_email_id, tracking_pixel_url
from little_bell.store import Store

router = APIRouter()


@router.post(
    "/{tenant_id}/emails",
    response_model=CreateEmailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_email(
    tenant_id: str,
    payload: CreateEmailRequest,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> CreateEmailResponse:
    """Register an email and return its tracking pixel URL."""
    email = await store.create_email(
        tenant_id,
        subject=payload.subject,
        recipient=payload.recipient,
    )
    return CreateEmailResponse(
        email_id=email.id,
        tracking_pixel_url=tracking_pixel_url(settings.base_url, tenant_id, email.id),
    )


@router.get("/{tenant_id}/emails/{email_id}", response_model=EmailRead)
async def get_email(
    tenant_id: str,
    email_id: str,
    store: Store = Depends(get_store),
) -> EmailRead:
    """Get an email owned by the tenant."""
    parsed_id = parse_email_id(email_id)
    email = await store.get_email(tenant_id, parsed_id)
    if email is None:
        raise NotFoundError("Email", parsed_id, tenant_id=tenant_id)
    return EmailRead.model_validate(email)


@router.get("/{tenant_id}/emails/{email_id}/events", response_model=List[EventRead])
async def list_email_events(
    tenant_id: str,
    email_id: str,
    store: Store = Depends(get_store),
) -> List[EventRead]:
    """All events of one email, oldest first."""
    parsed_id = parse_email_id(email_id)
    if await store.get_email(tenant_id, parsed_id) is None:
        raise NotFoundError("Email", parsed_id, tenant_id=tenant_id)
    return [EventRead.model_validate(row) async for row in store.list_events(tenant_id, parsed_id)]
