from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import configure_logging, load_config
from .models import AnalyticsEvent, EventWindow
from .presentation import render_dashboard
from .repository import EventStore, EventStoreError, InMemoryEventStore, build_event_store
from .service import FunnelMetricsAggregator

config = load_config()
configure_logging(config.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Growth Dashboard API", version="0.1.0")
store: Optional[EventStore] = build_event_store(config.source, config.window)
aggregator = FunnelMetricsAggregator()


class EventPayload(BaseModel):
    event_name: str
    session_id: str
    created_at: datetime
    user_id: Optional[str] = None


class GrowthRequest(BaseModel):
    events: List[EventPayload] = Field(default_factory=list)
    since: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, gt=0)


class GrowthResponse(BaseModel):
    metrics: Dict[str, Any]
    view: Dict[str, Any]
    source: str
    since: Optional[datetime] = None
    event_count: int
    truncated: bool


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/growth", response_model=GrowthResponse)
def growth_endpoint() -> GrowthResponse:
    if store is None:
        raise HTTPException(
            status_code=500,
            detail=(
                "Neither GROWTH_DATABASE_URL nor GROWTH_REST_URL is configured; "
                "POST events to /growth for ad-hoc queries."
            ),
        )
    try:
        window = store.load_recent()
    except EventStoreError as exc:
        logger.warning("Growth dashboard fetch failed: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to load analytics events.") from exc
    return _build_response(window, "database" if config.source.database_url else "rest")


@app.post("/growth", response_model=GrowthResponse)
def growth_inline_endpoint(request: GrowthRequest) -> GrowthResponse:
    inline_store = InMemoryEventStore(
        (_convert_event_payload(payload) for payload in request.events),
        window=config.window,
    )
    since = request.since or datetime.now(timezone.utc) - timedelta(days=config.window.lookback_days)
    window = inline_store.fetch_window(since, request.limit or config.window.row_limit)
    return _build_response(window, "inline")


def _build_response(window: EventWindow, source: str) -> GrowthResponse:
    metrics = aggregator.compute(window)
    if window.truncated:
        logger.info("Growth window hit the %s row cap; older events were dropped", window.limit)
    view = render_dashboard(metrics, lookback_days=config.window.lookback_days)
    return GrowthResponse(
        metrics=metrics.as_dict(),
        view=view.as_dict(),
        source=source,
        since=window.since,
        event_count=len(window),
        truncated=window.truncated,
    )


def _convert_event_payload(payload: EventPayload) -> AnalyticsEvent:
    return AnalyticsEvent(
        event_name=payload.event_name,
        session_id=payload.session_id,
        created_at=payload.created_at,
        user_id=payload.user_id or None,
    )
