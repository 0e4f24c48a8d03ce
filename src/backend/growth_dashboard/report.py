from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Optional, Sequence

from .config import configure_logging, load_config
from .presentation import render_dashboard
from .repository import EventStoreError, build_event_store, parse_timestamp
from .service import FunnelMetricsAggregator

logger = logging.getLogger(__name__)


def _timestamp_arg(value: str) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value!r}")
    return parsed


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {parsed}")
    return parsed


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print the growth funnel metrics as JSON.")
    parser.add_argument("--now", type=_timestamp_arg, default=None, help="Window end (ISO-8601), defaults to the current time.")
    parser.add_argument("--lookback-days", type=_positive_int, default=None, help="Override the configured lookback.")
    parser.add_argument("--limit", type=_positive_int, default=None, help="Override the configured row cap.")
    parser.add_argument("--view", action="store_true", help="Include the rendered card layout.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    cfg = load_config()
    configure_logging(cfg.log_level)

    if args.lookback_days is not None:
        cfg.window.lookback_days = args.lookback_days
    if args.limit is not None:
        cfg.window.row_limit = args.limit

    store = build_event_store(cfg.source, cfg.window)
    if store is None:
        logger.error("Set GROWTH_DATABASE_URL or GROWTH_REST_URL to read analytics events.")
        return 2

    try:
        window = store.load_recent(now=args.now)
    except EventStoreError as exc:
        logger.error("Could not load analytics events: %s", exc)
        return 1

    metrics = FunnelMetricsAggregator().compute(window)
    payload = {"metrics": metrics.as_dict(), "eventCount": len(window), "truncated": window.truncated}
    if args.view:
        payload["view"] = render_dashboard(metrics, lookback_days=cfg.window.lookback_days).as_dict()
    json.dump(payload, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
