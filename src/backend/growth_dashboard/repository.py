from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import requests
from sqlalchemy import Column, DateTime, MetaData, String, Table, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import EventSourceConfig, GrowthDashboardConfig, WindowConfig, load_config
from .models import AnalyticsEvent, EventWindow

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ("event_name", "user_id", "session_id", "created_at")


class EventStoreError(RuntimeError):
    """Raised when the event window cannot be fetched."""


def _normalize_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _normalize_ts(value)
    if isinstance(value, str) and value:
        raw = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return _normalize_ts(datetime.fromisoformat(raw))
        except ValueError:
            return None
    return None


def row_to_event(row: Mapping[str, Any]) -> Optional[AnalyticsEvent]:
    """
    Map one ``analytics_events`` row onto an event.

    Returns ``None`` for rows the aggregator cannot use (no name, no session or
    an unreadable timestamp) so callers can drop them.
    """

    event_name = row.get("event_name")
    session_id = row.get("session_id")
    created_at = parse_timestamp(row.get("created_at"))
    if not event_name or not session_id or created_at is None:
        return None
    user_id = row.get("user_id")
    return AnalyticsEvent(
        event_name=str(event_name),
        session_id=str(session_id),
        created_at=created_at,
        user_id=str(user_id) if user_id else None,
    )


def rows_to_window(rows: Iterable[Mapping[str, Any]], since: datetime, limit: int) -> EventWindow:
    events: List[AnalyticsEvent] = []
    skipped = 0
    for row in rows:
        event = row_to_event(row)
        if event is None:
            skipped += 1
            continue
        events.append(event)
    if skipped:
        logger.warning("Skipped %s malformed analytics rows", skipped)
    return EventWindow(events=tuple(events), since=since, limit=limit)


class EventStore:
    """
    Interface for loading the dashboard's event window.

    Implementations return at most ``limit`` events with
    ``created_at >= since``, newest first.
    """

    def __init__(self, window: Optional[WindowConfig] = None):
        self.window = window if window is not None else WindowConfig()

    def fetch_window(self, since: datetime, limit: int) -> EventWindow:
        raise NotImplementedError

    def load_recent(self, now: Optional[datetime] = None) -> EventWindow:
        current = _normalize_ts(now) if now else datetime.now(timezone.utc)
        since = current - timedelta(days=self.window.lookback_days)
        return self.fetch_window(since, self.window.row_limit)


class InMemoryEventStore(EventStore):
    """Serves inline payloads with the same window rules as the real stores."""

    def __init__(self, events: Iterable[AnalyticsEvent], window: Optional[WindowConfig] = None):
        self.events = tuple(events)
        super().__init__(window)

    def fetch_window(self, since: datetime, limit: int) -> EventWindow:
        since = _normalize_ts(since)
        matching = [event for event in self.events if _normalize_ts(event.created_at) >= since]
        matching.sort(key=lambda event: _normalize_ts(event.created_at), reverse=True)
        return EventWindow(events=tuple(matching[:limit]), since=since, limit=limit)


def analytics_events_table(table_name: str = "analytics_events", metadata: Optional[MetaData] = None) -> Table:
    return Table(
        table_name,
        metadata if metadata is not None else MetaData(),
        Column("event_name", String, nullable=False),
        Column("user_id", String, nullable=True),
        Column("session_id", String, nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False),
    )


class SQLEventStore(EventStore):
    """
    Read the window straight from the ``analytics_events`` table.

    Only the four columns the funnel needs are selected; the
    ``(event_name, created_at DESC)`` index on the table keeps the range scan
    cheap.
    """

    def __init__(self, engine: Engine, table_name: str = "analytics_events", window: Optional[WindowConfig] = None):
        self.engine = engine
        self.table = analytics_events_table(table_name)
        super().__init__(window)

    def fetch_window(self, since: datetime, limit: int) -> EventWindow:
        since = _normalize_ts(since)
        query = (
            select(*(self.table.c[name] for name in EVENT_COLUMNS))
            .where(self.table.c.created_at >= since)
            .order_by(self.table.c.created_at.desc())
            .limit(limit)
        )
        try:
            with self.engine.connect() as connection:
                rows = connection.execute(query).mappings().all()
        except SQLAlchemyError as exc:
            logger.warning("Failed to load analytics events from database: %s", exc)
            raise EventStoreError("analytics events query failed") from exc
        return rows_to_window(rows, since, limit)


class RestEventStore(EventStore):
    """
    Query the hosted backend's REST interface (PostgREST filter syntax).
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table_name: str = "analytics_events",
        timeout: int = 10,
        window: Optional[WindowConfig] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table_name = table_name
        self.timeout = timeout
        super().__init__(window)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table_name}"

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def fetch_window(self, since: datetime, limit: int) -> EventWindow:
        since = _normalize_ts(since)
        params = {
            "select": ",".join(EVENT_COLUMNS),
            "created_at": f"gte.{since.isoformat()}",
            "order": "created_at.desc",
            "limit": str(limit),
        }
        try:
            resp = requests.get(self.endpoint, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Failed to reach analytics endpoint %s: %s", self.endpoint, exc)
            raise EventStoreError("analytics events request failed") from exc
        if resp.status_code >= 400:
            logger.warning("Analytics endpoint %s returned %s", self.endpoint, resp.status_code)
            raise EventStoreError(f"analytics events request failed with status {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.warning("Analytics endpoint %s returned a non-JSON body", self.endpoint)
            raise EventStoreError("analytics events response is not JSON") from exc
        if not isinstance(payload, list):
            raise EventStoreError("analytics events response is not a list")
        # PostgREST may be configured with a larger max-rows than requested.
        rows: Sequence[Mapping[str, Any]] = [row for row in payload if isinstance(row, Mapping)][:limit]
        return rows_to_window(rows, since, limit)


def build_event_store(
    source: EventSourceConfig, window: Optional[WindowConfig] = None
) -> Optional[EventStore]:
    if source.database_url:
        engine = create_engine(source.database_url)
        return SQLEventStore(engine, table_name=source.table_name, window=window)
    if source.rest_url:
        return RestEventStore(
            source.rest_url,
            api_key=source.rest_api_key,
            table_name=source.table_name,
            timeout=source.request_timeout_seconds,
            window=window,
        )
    return None


def build_event_store_from_env(config: Optional[GrowthDashboardConfig] = None) -> Optional[EventStore]:
    cfg = config or load_config()
    return build_event_store(cfg.source, cfg.window)

