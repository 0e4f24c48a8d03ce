from __future__ import annotations

from typing import Callable, Hashable, Iterable, Optional

from .models import AnalyticsEvent


KeyFn = Callable[[AnalyticsEvent], Optional[Hashable]]


def _session_key(event: AnalyticsEvent) -> Optional[Hashable]:
    return event.session_id


def _user_key(event: AnalyticsEvent) -> Optional[Hashable]:
    # Anonymous rows carry no user and must not count as one.
    return event.user_id or None


def group_count_distinct(events: Iterable[AnalyticsEvent], name: str, key_fn: KeyFn) -> int:
    """
    Count distinct ``key_fn`` values among events named ``name``.

    ``None`` keys are dropped, so the same helper serves both the session and
    the signed-in user variants.
    """

    keys = {key for event in events if event.event_name == name and (key := key_fn(event)) is not None}
    return len(keys)


def count(events: Iterable[AnalyticsEvent], name: str) -> int:
    return sum(1 for event in events if event.event_name == name)


def unique_sessions(events: Iterable[AnalyticsEvent], name: str) -> int:
    return group_count_distinct(events, name, _session_key)


def unique_users(events: Iterable[AnalyticsEvent], name: str) -> int:
    return group_count_distinct(events, name, _user_key)
