from dataclasses import fields
from datetime import timedelta

from backend.growth_dashboard.dataset import count, group_count_distinct, unique_sessions, unique_users
from backend.growth_dashboard.models import EventWindow, FunnelMetrics
from backend.growth_dashboard.service import (
    ACTIVATION_FUNNEL,
    INSTALL_FUNNEL,
    FunnelMetricsAggregator,
    compute_funnel_metrics,
    format_percentage,
)

from factories import NOW, make_event


PERCENT_FIELDS = [f.name for f in fields(FunnelMetrics) if f.name.endswith("_pct")]
COUNT_FIELDS = [f.name for f in fields(FunnelMetrics) if not f.name.endswith("_pct")]


def _install_events(**stages):
    """Build install-funnel events with ``n`` distinct sessions per stage."""
    events = []
    for name, sessions in stages.items():
        for idx in range(sessions):
            events.append(make_event(name, session_id=f"{name}-{idx}"))
    return events


def test_empty_window_is_all_zero():
    metrics = compute_funnel_metrics([])
    for name in COUNT_FIELDS:
        assert getattr(metrics, name) == 0
    for name in PERCENT_FIELDS:
        assert getattr(metrics, name) == "0.0"


def test_empty_event_window_object():
    metrics = FunnelMetricsAggregator().compute(EventWindow())
    assert metrics == FunnelMetrics()


def test_landing_sessions_and_auth_conversion():
    events = [
        make_event("landing_view", session_id="S1"),
        make_event("landing_view", session_id="S1"),
        make_event("landing_view", session_id="S2"),
        make_event("auth_submit", session_id="S1"),
    ]
    metrics = compute_funnel_metrics(events)
    assert metrics.landing == 2
    assert metrics.auth_submit == 1
    assert metrics.auth_conversion_pct == "50.0"
    assert metrics.total_events == 4


def test_duplicate_auth_success_counts_user_once():
    events = [
        make_event("auth_success", session_id="S1", user_id="U1"),
        make_event("auth_success", session_id="S2", user_id="U1"),
        make_event("first_vehicle_visible", session_id="S2", user_id="U1"),
    ]
    metrics = compute_funnel_metrics(events)
    assert metrics.auth_success == 1
    assert metrics.first_vehicle == 1
    assert metrics.activation_pct == "100.0"


def test_null_user_ids_are_not_users():
    events = [
        make_event("auth_success", session_id="S1", user_id=None),
        make_event("auth_success", session_id="S2", user_id=None),
    ]
    metrics = compute_funnel_metrics(events)
    assert metrics.auth_success == 0
    assert metrics.activation_pct == "0.0"
    assert metrics.push_opt_in_pct == "0.0"


def test_empty_string_user_id_is_treated_as_anonymous():
    assert unique_users([make_event("auth_success", user_id="")], "auth_success") == 0


def test_duplicates_change_raw_count_but_not_unique_counts():
    base = [make_event("auth_error", session_id="S1", user_id="U1")]
    duplicated = base + [make_event("auth_error", session_id="S1", user_id="U1", created_at=NOW - timedelta(hours=3))]

    assert unique_sessions(base, "auth_error") == unique_sessions(duplicated, "auth_error") == 1
    assert unique_users(base, "auth_error") == unique_users(duplicated, "auth_error") == 1
    assert count(base, "auth_error") == 1
    assert count(duplicated, "auth_error") == 2


def test_error_metrics_count_every_event():
    events = [make_event("auth_error", session_id="S1")] * 3 + [make_event("install_error", session_id="S9")] * 2
    metrics = compute_funnel_metrics(events)
    assert metrics.auth_errors == 3
    assert metrics.install_errors == 2


def test_group_count_distinct_ignores_none_keys():
    events = [
        make_event("first_chat_sent", session_id="S1", user_id="U1"),
        make_event("first_chat_sent", session_id="S2", user_id=None),
        make_event("landing_view", session_id="S3", user_id="U2"),
    ]
    assert group_count_distinct(events, "first_chat_sent", lambda e: e.user_id) == 1
    assert group_count_distinct(events, "first_chat_sent", lambda e: e.session_id) == 2
    assert group_count_distinct(events, "unknown_event", lambda e: e.session_id) == 0


def test_install_funnel_zero_prompt_stage():
    events = _install_events(install_view=10, install_cta_click=4)
    metrics = compute_funnel_metrics(events)
    assert metrics.install_views == 10
    assert metrics.install_cta == 4
    assert metrics.install_prompt == 0
    assert metrics.install_view_to_cta_pct == "40.0"
    assert metrics.install_cta_to_prompt_pct == "0.0"
    assert metrics.install_prompt_to_accept_pct == "0.0"


def test_installed_without_view_uses_zero_denominator():
    metrics = compute_funnel_metrics([make_event("install_appinstalled", session_id="S1")])
    assert metrics.install_installed == 1
    assert metrics.install_views == 0
    assert metrics.install_view_to_installed_pct == "0.0"


def test_stage_ratios_are_not_clamped():
    events = [
        make_event("install_view", session_id="S1"),
        make_event("install_appinstalled", session_id="S1"),
        make_event("install_appinstalled", session_id="S2"),
    ]
    metrics = compute_funnel_metrics(events)
    assert metrics.install_views == 1
    assert metrics.install_installed == 2
    assert metrics.install_view_to_installed_pct == "200.0"


def test_full_install_funnel_chain():
    events = _install_events(
        install_view=8,
        install_cta_click=6,
        install_beforeinstallprompt=3,
        install_prompt_accepted=2,
        install_appinstalled=1,
    )
    metrics = compute_funnel_metrics(events)
    assert metrics.install_view_to_cta_pct == "75.0"
    assert metrics.install_cta_to_prompt_pct == "50.0"
    assert metrics.install_prompt_to_accept_pct == "66.7"
    assert metrics.install_accept_to_installed_pct == "50.0"
    assert metrics.install_view_to_installed_pct == "12.5"


def test_activation_funnel_percentages():
    events = [make_event("auth_success", session_id=f"S{i}", user_id=f"U{i}") for i in range(3)]
    events += [make_event("first_vehicle_visible", session_id="S0", user_id="U0")]
    events += [make_event("first_vehicle_visible", session_id="S1", user_id="U1")]
    events += [make_event("first_chat_sent", session_id="S0", user_id="U0")]
    events += [make_event("push_permission_granted", session_id="S2", user_id="U2")]
    metrics = compute_funnel_metrics(events)
    assert metrics.activation_pct == "66.7"
    assert metrics.first_chat_pct == "50.0"
    assert metrics.push_opt_in_pct == "33.3"


def test_compute_is_deterministic_and_order_independent():
    events = [
        make_event("landing_view", session_id="S1"),
        make_event("landing_view", session_id="S2"),
        make_event("auth_submit", session_id="S2"),
        make_event("auth_success", session_id="S2", user_id="U2"),
        make_event("install_view", session_id="S3"),
    ]
    aggregator = FunnelMetricsAggregator()
    first = aggregator.compute(events)
    assert aggregator.compute(events) == first
    assert aggregator.compute(list(reversed(events))) == first


def test_compute_accepts_generators():
    metrics = compute_funnel_metrics(make_event("landing_view", session_id=f"S{i}") for i in range(3))
    assert metrics.landing == 3
    assert metrics.total_events == 3


def test_unknown_events_only_affect_total():
    metrics = compute_funnel_metrics([make_event("voice_tts_play"), make_event("something_new")])
    assert metrics.total_events == 2
    assert metrics.landing == 0


def test_format_percentage_rules():
    assert format_percentage(5, 0) == "0.0"
    assert format_percentage(0, 7) == "0.0"
    assert format_percentage(1, 3) == "33.3"
    assert format_percentage(2, 3) == "66.7"
    assert format_percentage(49, 400) == "12.3"
    assert format_percentage(3, 2) == "150.0"


def test_as_dict_uses_dashboard_keys():
    payload = compute_funnel_metrics([make_event("landing_view")]).as_dict()
    assert payload["landing"] == 1
    assert payload["authConversionPct"] == "0.0"
    assert payload["installViewToInstalledPct"] == "0.0"
    assert payload["pushOptInPct"] == "0.0"
    assert payload["totalEvents"] == 1
    assert "auth_conversion_pct" not in payload


def test_funnel_definitions_cover_every_metric():
    defined = {c.metric for funnel in (ACTIVATION_FUNNEL, INSTALL_FUNNEL) for c in funnel.counts}
    defined |= {r.metric for funnel in (ACTIVATION_FUNNEL, INSTALL_FUNNEL) for r in funnel.ratios}
    expected = {f.name for f in fields(FunnelMetrics)} - {"total_events"}
    assert defined == expected
