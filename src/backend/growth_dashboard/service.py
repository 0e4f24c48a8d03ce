from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, Sequence

from . import dataset
from .models import (
    AUTH_ERROR,
    AUTH_SUBMIT,
    AUTH_SUCCESS,
    FIRST_CHAT_SENT,
    FIRST_VEHICLE_VISIBLE,
    INSTALL_APPINSTALLED,
    INSTALL_BEFOREINSTALLPROMPT,
    INSTALL_CTA_CLICK,
    INSTALL_ERROR,
    INSTALL_PROMPT_ACCEPTED,
    INSTALL_VIEW,
    LANDING_VIEW,
    PUSH_PERMISSION_GRANTED,
    AnalyticsEvent,
    FunnelMetrics,
)


Primitive = Callable[[Sequence[AnalyticsEvent], str], int]

_ONE_DECIMAL = Decimal("0.1")


@dataclass(frozen=True)
class CountDefinition:
    metric: str
    event_name: str
    primitive: Primitive


@dataclass(frozen=True)
class RatioDefinition:
    metric: str
    numerator: str
    denominator: str


@dataclass(frozen=True)
class FunnelDefinition:
    name: str
    counts: Sequence[CountDefinition]
    ratios: Sequence[RatioDefinition]


ACTIVATION_FUNNEL = FunnelDefinition(
    name="activation",
    counts=(
        CountDefinition("landing", LANDING_VIEW, dataset.unique_sessions),
        CountDefinition("auth_submit", AUTH_SUBMIT, dataset.unique_sessions),
        CountDefinition("auth_success", AUTH_SUCCESS, dataset.unique_users),
        CountDefinition("first_vehicle", FIRST_VEHICLE_VISIBLE, dataset.unique_users),
        CountDefinition("first_chat", FIRST_CHAT_SENT, dataset.unique_users),
        CountDefinition("push_granted", PUSH_PERMISSION_GRANTED, dataset.unique_users),
        CountDefinition("auth_errors", AUTH_ERROR, dataset.count),
    ),
    ratios=(
        RatioDefinition("auth_conversion_pct", "auth_submit", "landing"),
        RatioDefinition("activation_pct", "first_vehicle", "auth_success"),
        RatioDefinition("first_chat_pct", "first_chat", "first_vehicle"),
        RatioDefinition("push_opt_in_pct", "push_granted", "auth_success"),
    ),
)

# Each stage is counted on its own, not by following a session through the
# steps, so adjacent ratios can exceed 100%.
INSTALL_FUNNEL = FunnelDefinition(
    name="install",
    counts=(
        CountDefinition("install_views", INSTALL_VIEW, dataset.unique_sessions),
        CountDefinition("install_cta", INSTALL_CTA_CLICK, dataset.unique_sessions),
        CountDefinition("install_prompt", INSTALL_BEFOREINSTALLPROMPT, dataset.unique_sessions),
        CountDefinition("install_accepted", INSTALL_PROMPT_ACCEPTED, dataset.unique_sessions),
        CountDefinition("install_installed", INSTALL_APPINSTALLED, dataset.unique_sessions),
        CountDefinition("install_errors", INSTALL_ERROR, dataset.count),
    ),
    ratios=(
        RatioDefinition("install_view_to_cta_pct", "install_cta", "install_views"),
        RatioDefinition("install_cta_to_prompt_pct", "install_prompt", "install_cta"),
        RatioDefinition("install_prompt_to_accept_pct", "install_accepted", "install_prompt"),
        RatioDefinition("install_accept_to_installed_pct", "install_installed", "install_accepted"),
        RatioDefinition("install_view_to_installed_pct", "install_installed", "install_views"),
    ),
)

DEFAULT_FUNNELS = (ACTIVATION_FUNNEL, INSTALL_FUNNEL)


def format_percentage(numerator: int, denominator: int) -> str:
    """
    Render ``numerator / denominator`` as a percentage with one decimal.

    A zero denominator gives ``"0.0"`` whatever the numerator. Ties round half
    up on the exact float value, the way the dashboard has always displayed
    them, and the result is never clamped to 100.
    """

    if denominator <= 0:
        return "0.0"
    value = (numerator / denominator) * 100
    return str(Decimal(value).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


class FunnelMetricsAggregator:
    """
    Turns an event window into the growth dashboard's funnel metrics.

    Stateless: ``compute`` only reads its argument, so one instance can be
    shared between requests.
    """

    def __init__(self, funnels: Sequence[FunnelDefinition] = DEFAULT_FUNNELS) -> None:
        self.funnels = tuple(funnels)

    def compute(self, events: Iterable[AnalyticsEvent]) -> FunnelMetrics:
        rows = tuple(events)
        counts: Dict[str, int] = {}
        percentages: Dict[str, str] = {}

        for funnel in self.funnels:
            for definition in funnel.counts:
                counts[definition.metric] = definition.primitive(rows, definition.event_name)
            for ratio in funnel.ratios:
                percentages[ratio.metric] = format_percentage(
                    counts[ratio.numerator], counts[ratio.denominator]
                )

        return FunnelMetrics(total_events=len(rows), **counts, **percentages)


def compute_funnel_metrics(events: Iterable[AnalyticsEvent]) -> FunnelMetrics:
    return FunnelMetricsAggregator().compute(events)
