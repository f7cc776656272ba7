from typing import Any
from fastapi import APIRouter, Body, Depends, Request
from .schemas import IngestRequest, IngestResponse
from ..event_models import RequestContext
from ..privacy import client_ip
from ..services import get_gateway
from ..services.gateway import IngestionGateway

router = APIRouter(prefix="/analytics", tags=["analytics"])


def request_context(request: Request, route: str = "") -> RequestContext:
    headers = request.headers
    return RequestContext(
        ip=client_ip(headers.get("x-forwarded-for"), request.client.host if request.client else ""),
        user_agent=headers.get("user-agent", ""),
        referrer=headers.get("referer") or headers.get("referrer") or "",
        route=route,
    )


@router.post("/events", response_model=IngestResponse, response_model_exclude_none=True, status_code=202)
async def ingest_events(
    request: Request,
    body: Any = Body(default=None),
    gateway: IngestionGateway = Depends(get_gateway),
):
    """
    Accept a batch of client analytics events.

    Returns 202 once events are enqueued (or accepted with the queue
    disabled); archival happens asynchronously in the worker.
    """
    req = IngestRequest.from_body(body)
    result = await gateway.ingest(req.events, request_context(request, req.route))
    return IngestResponse(**result.model_dump())
