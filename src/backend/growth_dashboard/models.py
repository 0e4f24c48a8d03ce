from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple


LANDING_VIEW = "landing_view"
AUTH_VIEW = "auth_view"
AUTH_SUBMIT = "auth_submit"
AUTH_SUCCESS = "auth_success"
AUTH_ERROR = "auth_error"
INSTALL_VIEW = "install_view"
INSTALL_CTA_CLICK = "install_cta_click"
INSTALL_INSTRUCTION_VIEW = "install_instruction_view"
INSTALL_BEFOREINSTALLPROMPT = "install_beforeinstallprompt"
INSTALL_PROMPT_ACCEPTED = "install_prompt_accepted"
INSTALL_PROMPT_DISMISSED = "install_prompt_dismissed"
INSTALL_APPINSTALLED = "install_appinstalled"
INSTALL_ERROR = "install_error"
INSTALL_SHARE = "install_share"
INSTALL_COPY_LINK = "install_copy_link"
VEHICLE_REQUEST_OPEN = "vehicle_request_open"
VEHICLE_REQUEST_SUBMIT = "vehicle_request_submit"
VEHICLE_REQUEST_APPROVED = "vehicle_request_approved"
FIRST_VEHICLE_VISIBLE = "first_vehicle_visible"
FIRST_CHAT_OPEN = "first_chat_open"
FIRST_CHAT_SENT = "first_chat_sent"
FIRST_ALERT_SEEN = "first_alert_seen"
PUSH_BANNER_VIEW = "push_banner_view"
PUSH_PERMISSION_PROMPT = "push_permission_prompt"
PUSH_PERMISSION_GRANTED = "push_permission_granted"
PUSH_PERMISSION_DENIED = "push_permission_denied"
D1_RETURN = "d1_return"
D7_RETURN = "d7_return"

VOICE_EVENTS = frozenset(
    {
        "voice_mic_tap",
        "voice_recording_started",
        "voice_recording_stopped",
        "voice_transcript_success",
        "voice_transcript_empty",
        "voice_permission_denied",
        "voice_tts_play",
        "voice_tts_stop",
        "voice_unsupported",
    }
)

# Every event name the client instrumentation emits. Names outside this set
# are still accepted; they just never feed a funnel metric.
KNOWN_EVENTS = frozenset(
    {
        LANDING_VIEW,
        AUTH_VIEW,
        AUTH_SUBMIT,
        AUTH_SUCCESS,
        AUTH_ERROR,
        INSTALL_VIEW,
        INSTALL_CTA_CLICK,
        INSTALL_INSTRUCTION_VIEW,
        INSTALL_BEFOREINSTALLPROMPT,
        INSTALL_PROMPT_ACCEPTED,
        INSTALL_PROMPT_DISMISSED,
        INSTALL_APPINSTALLED,
        INSTALL_ERROR,
        INSTALL_SHARE,
        INSTALL_COPY_LINK,
        VEHICLE_REQUEST_OPEN,
        VEHICLE_REQUEST_SUBMIT,
        VEHICLE_REQUEST_APPROVED,
        FIRST_VEHICLE_VISIBLE,
        FIRST_CHAT_OPEN,
        FIRST_CHAT_SENT,
        FIRST_ALERT_SEEN,
        PUSH_BANNER_VIEW,
        PUSH_PERMISSION_PROMPT,
        PUSH_PERMISSION_GRANTED,
        PUSH_PERMISSION_DENIED,
        D1_RETURN,
        D7_RETURN,
    }
    | VOICE_EVENTS
)


@dataclass(frozen=True)
class AnalyticsEvent:
    """
    One row of the ``analytics_events`` table.

    ``user_id`` stays ``None`` for anonymous sessions and is filled in once the
    client has attributed the session to a signed-in user. ``session_id`` is
    always present.
    """

    event_name: str
    session_id: str
    created_at: datetime
    user_id: Optional[str] = None


@dataclass(frozen=True)
class EventWindow:
    """
    Bounded slice of events handed to the aggregator.

    ``events`` are ordered most recent first and all satisfy
    ``created_at >= since``. ``limit`` is the row cap the store applied, so a
    window with ``len(events) == limit`` may have been truncated.
    """

    events: Tuple[AnalyticsEvent, ...] = ()
    since: Optional[datetime] = None
    limit: Optional[int] = None

    def __iter__(self) -> Iterator[AnalyticsEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def truncated(self) -> bool:
        return self.limit is not None and len(self.events) >= self.limit


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class FunnelMetrics:
    landing: int = 0
    auth_submit: int = 0
    auth_success: int = 0
    first_vehicle: int = 0
    first_chat: int = 0
    push_granted: int = 0
    auth_errors: int = 0
    install_views: int = 0
    install_cta: int = 0
    install_prompt: int = 0
    install_accepted: int = 0
    install_installed: int = 0
    install_errors: int = 0
    total_events: int = 0
    auth_conversion_pct: str = "0.0"
    activation_pct: str = "0.0"
    first_chat_pct: str = "0.0"
    push_opt_in_pct: str = "0.0"
    install_view_to_cta_pct: str = "0.0"
    install_cta_to_prompt_pct: str = "0.0"
    install_prompt_to_accept_pct: str = "0.0"
    install_accept_to_installed_pct: str = "0.0"
    install_view_to_installed_pct: str = "0.0"

    def as_dict(self) -> Dict[str, Any]:
        """Flat camelCase record, the shape the dashboard frontend reads."""
        return {_camel(key): value for key, value in asdict(self).items()}


@dataclass(frozen=True)
class MetricCard:
    key: str
    label: str
    display: str


@dataclass(frozen=True)
class CardSection:
    title: str
    cards: Tuple[MetricCard, ...] = field(default_factory=tuple)
    description: Optional[str] = None


@dataclass(frozen=True)
class DashboardView:
    title: str
    subtitle: str
    loading: bool
    sections: Tuple[CardSection, ...] = field(default_factory=tuple)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "loading": self.loading,
            "sections": [
                {
                    "title": section.title,
                    "description": section.description,
                    "cards": [
                        {"key": card.key, "label": card.label, "display": card.display}
                        for card in section.cards
                    ],
                }
                for section in self.sections
            ],
        }
