from __future__ import annotations

from typing import Optional, Sequence, Tuple

from .models import CardSection, DashboardView, FunnelMetrics, MetricCard


LOADING_PLACEHOLDER = "--"

ACTIVATION_COUNT_CARDS: Sequence[Tuple[str, str]] = (
    ("landing", "Landing Sessions"),
    ("auth_submit", "Auth Submits"),
    ("auth_success", "Auth Success Users"),
    ("first_vehicle", "Vehicle Linked Users"),
    ("first_chat", "First Chat Users"),
    ("push_granted", "Push Opt-In Users"),
)

ACTIVATION_PERCENT_CARDS: Sequence[Tuple[str, str]] = (
    ("auth_conversion_pct", "Visitor to Auth Submit"),
    ("activation_pct", "Auth to Vehicle Linked"),
    ("first_chat_pct", "Vehicle Linked to First Chat"),
    ("push_opt_in_pct", "Auth to Push Granted"),
)

INSTALL_COUNT_CARDS: Sequence[Tuple[str, str]] = (
    ("install_views", "/install Sessions"),
    ("install_cta", "CTA Click Sessions"),
    ("install_prompt", "Prompt Eligible Sessions"),
    ("install_accepted", "Prompt Accepted Sessions"),
    ("install_installed", "Installed Sessions"),
    ("install_errors", "Install Errors"),
)

INSTALL_PERCENT_CARDS: Sequence[Tuple[str, str]] = (
    ("install_view_to_cta_pct", "View → CTA"),
    ("install_cta_to_prompt_pct", "CTA → Prompt"),
    ("install_prompt_to_accept_pct", "Prompt → Accept"),
    ("install_accept_to_installed_pct", "Accept → Installed"),
    ("install_view_to_installed_pct", "View → Installed"),
)


def _count_cards(metrics: FunnelMetrics, specs: Sequence[Tuple[str, str]], loading: bool) -> Tuple[MetricCard, ...]:
    return tuple(
        MetricCard(
            key=key,
            label=label,
            display=LOADING_PLACEHOLDER if loading else str(getattr(metrics, key)),
        )
        for key, label in specs
    )


def _percent_cards(metrics: FunnelMetrics, specs: Sequence[Tuple[str, str]]) -> Tuple[MetricCard, ...]:
    return tuple(MetricCard(key=key, label=label, display=f"{getattr(metrics, key)}%") for key, label in specs)


def render_dashboard(
    metrics: Optional[FunnelMetrics] = None,
    loading: bool = False,
    lookback_days: int = 30,
) -> DashboardView:
    """
    Lay the metrics out as the growth dashboard's card grid.

    While the window is still loading, count cards show ``--``. Percentage
    cards are always rendered from ``metrics``, which is the empty-window
    result (``0.0%``) until data arrives.
    """

    metrics = metrics or FunnelMetrics()
    sections = (
        CardSection(title="Activation", cards=_count_cards(metrics, ACTIVATION_COUNT_CARDS, loading)),
        CardSection(title="Activation Conversion", cards=_percent_cards(metrics, ACTIVATION_PERCENT_CARDS)),
        CardSection(
            title=f"Install Funnel (Last {lookback_days} days)",
            description="Sessions across all platforms from /install view to successful app installation.",
            cards=_count_cards(metrics, INSTALL_COUNT_CARDS, loading),
        ),
        CardSection(title="Install Conversion", cards=_percent_cards(metrics, INSTALL_PERCENT_CARDS)),
    )
    return DashboardView(
        title="Growth Dashboard",
        subtitle=f"Last {lookback_days} days GTM funnel telemetry.",
        loading=loading,
        sections=sections,
    )
