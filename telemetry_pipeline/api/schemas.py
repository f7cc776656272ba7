from pydantic import BaseModel
from typing import Any, List
from ..event_models import IngestResult


class IngestRequest(BaseModel):
    """
    Body of POST /analytics/events.

    Clients send {"events": [...]}; a bare object is accepted as a single
    event. Individual events are validated later by the normalizer, so this
    model never rejects a request.
    """
    events: List[Any]
    route: str = ""

    @classmethod
    def from_body(cls, body: Any) -> "IngestRequest":
        data = body if isinstance(body, dict) else {}
        events = data.get("events")
        route = data.get("route")
        return cls(
            events=events if isinstance(events, list) else [data],
            route=route if isinstance(route, str) else "",
        )


class IngestResponse(IngestResult):
    ok: bool = True
