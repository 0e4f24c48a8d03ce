"""
Growth dashboard backend.

Loads the trailing window of ``analytics_events`` rows and reduces it to the
activation and install funnel metrics shown on the admin growth dashboard.
"""

from .models import (  # noqa: F401
    AnalyticsEvent,
    CardSection,
    DashboardView,
    EventWindow,
    FunnelMetrics,
    MetricCard,
)
from .repository import (  # noqa: F401
    EventStore,
    EventStoreError,
    InMemoryEventStore,
    RestEventStore,
    SQLEventStore,
    build_event_store,
    build_event_store_from_env,
)
from .presentation import render_dashboard  # noqa: F401
from .service import FunnelMetricsAggregator, compute_funnel_metrics, format_percentage  # noqa: F401
