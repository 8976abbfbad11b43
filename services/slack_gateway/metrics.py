# services/slack_gateway/metrics.py
"""Prometheus metrics for the *Slack gateway*.

Two kinds of series are exported:
1. **Business** – how slash commands ended (reported / parse_failed / …).
2. **Runtime**  – latency of the Sheets append call, failed user lookups.

> Call `start_metrics_server()` once at process start. It serves `/metrics`
> on `METRICS_PORT`; without a port, metrics are collected but not exposed.
"""
from __future__ import annotations

import contextlib
import logging

from prometheus_client import Counter, Histogram, start_http_server

from libs.models import CommandOutcome

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric objects (module-level singletons)
# ---------------------------------------------------------------------------
COMMANDS_TOTAL = Counter(
    "slack_purchase_commands_total",
    "Slash commands processed, by terminal outcome",
    ["outcome"],
)
USER_LOOKUP_FAIL = Counter(
    "slack_user_lookup_fail_total",
    "users.info lookups that fell back to the placeholder name",
)
LEDGER_APPEND_SECONDS = Histogram(
    "ledger_append_seconds",
    "Time (sec) spent on one Sheets append call",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)


def record_outcome(outcome: CommandOutcome) -> None:
    COMMANDS_TOTAL.labels(outcome=outcome.value).inc()


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

def start_metrics_server(port: int | None) -> None:  # pragma: no cover – network
    """Starts the `/metrics` HTTP endpoint in a background thread."""
    if not port:
        log.info("METRICS_PORT not set – metrics endpoint disabled")
        return
    with contextlib.suppress(OSError):  # port already bound on reload
        start_http_server(port)
        log.info("Prometheus metrics available on http://0.0.0.0:%s/metrics", port)
