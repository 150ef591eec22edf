"""Open and click tracking endpoints."""
from typing import Optional
from urllib.parse import unquote_plus

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from little_bell.config import Settings
from little_bell.dependencies import RequestMeta, get_app_settings, get_recorder, get_request_meta, get_store
from little_bell.exceptions import TrackingError, ValidationError
from little_bell.schemas.email import ClickUrlResponse
from little_bell.services.recorder import EventRecorder

logger = structlog.get_logger()

router = APIRouter()

# 1x1 transparent GIF
PIXEL_GIF = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\xff\xff\xff\x00\x00\x00"
    b"!\xf9\x04\x01\x00\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def raw_query_param(request: Request, name: str) -> Optional[str]:
    """Value of a query parameter exactly as sent, still percent-encoded."""
    query = request.scope.get("query_string", b"").decode("latin-1")
    for pair in query.split("&"):
        key, _, value = pair.partition("=")
        if unquote_plus(key) == name:
            return value
    return None


@router.get("/{tenant_id}/pixel/{email_id}")
async def track_open(
    tenant_id: str,
    email_id: str,
    request: Request,
    meta: RequestMeta = Depends(get_request_meta),
) -> Response:
    """Record an open and serve the pixel. Always answers with the image."""
    if email_id.endswith(".gif"):
        email_id = email_id[: -len(".gif")]
    try:
        store = get_store(request)
    except TrackingError as exc:
        logger.error(
            "Open not recorded, store unavailable",
            tenant_id=tenant_id,
            email_id=email_id,
            error=exc.message,
        )
    else:
        await EventRecorder(store).record_open(
            tenant_id,
            email_id,
            user_agent=meta.user_agent,
            ip_address=meta.ip_address,
        )
    return Response(content=PIXEL_GIF, media_type="image/gif", headers=NO_CACHE_HEADERS)


@router.get("/{tenant_id}/click/{email_id}")
async def track_click(
    tenant_id: str,
    email_id: str,
    request: Request,
    meta: RequestMeta = Depends(get_request_meta),
    recorder: EventRecorder = Depends(get_recorder),
) -> RedirectResponse:
    """Record a click and redirect to the decoded target."""
    target = await recorder.record_click(
        tenant_id,
        email_id,
        raw_query_param(request, "url"),
        user_agent=meta.user_agent,
        ip_address=meta.ip_address,
    )
    return RedirectResponse(target, status_code=307, headers=NO_CACHE_HEADERS)


@router.get("/{tenant_id}/click-url/{email_id}", response_model=ClickUrlResponse)
async def get_click_url(
    tenant_id: str,
    email_id: str,
    url: Optional[str] = Query(None),
    recorder: EventRecorder = Depends(get_recorder),
    settings: Settings = Depends(get_app_settings),
) -> ClickUrlResponse:
    """Build a click-tracking link for a destination URL."""
    if url is None:
        raise ValidationError("Missing 'url' parameter")
    click_url = await recorder.click_url(tenant_id, email_id, url, settings.base_url)
    return ClickUrlResponse(click_url=click_url, original_url=url)
