"""FastAPI dependencies: the store handle, core services and request metadata."""
from typing import Optional

from fastapi import Depends, Request
from pydantic import BaseModel

from little_bell.config import Settings
from little_bell.exceptions import StoreError
from little_bell.services import Aggregator, EventRecorder
from little_bell.store import Store


class RequestMeta(BaseModel):
    """Client details recorded alongside a tracking event."""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    """The store opened at startup."""
    store: Optional[Store] = getattr(request.app.state, "store", None)
    if store is None or not store.is_open:
        raise StoreError("Store is not available")
    return store


def get_recorder(store: Store = Depends(get_store)) -> EventRecorder:
    return EventRecorder(store)


def get_aggregator(
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Aggregator:
    return Aggregator(store, recent_events_limit=settings.recent_events_limit)


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return None


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )
