"""Prometheus metrics for the offline queue and sync engine.

The module bundles all collectors in one place so importing side-effects
(metric registration) happen exactly once per process.  Services simply
``from stockflow.metrics import …`` and increment.
"""

from __future__ import annotations

from prometheus_client import Counter
from prometheus_client import Gauge

offline_actions_total = Counter(
    "stockflow_offline_actions_total",
    "Mutations queued while offline",
    labelnames=("entity", "type"),
)

replay_total = Counter(
    "stockflow_replay_total",
    "Queued actions replayed against the remote API, by outcome",
    labelnames=("entity", "outcome"),
)

cache_fallback_total = Counter(
    "stockflow_cache_fallback_total",
    "Reads served from the local cache because the remote API was unavailable",
    labelnames=("collection",),
)

# ------------------------------------------------------------------
# Gauges -----------------------------------------------------------
# ------------------------------------------------------------------

queue_depth = Gauge(
    "stockflow_queue_depth",
    "Number of actions currently waiting in the offline queue",
)

connected = Gauge(
    "stockflow_connected",
    "1 when the remote API is reachable, 0 otherwise",
)


__all__ = [
    "offline_actions_total",
    "replay_total",
    "cache_fallback_total",
    "queue_depth",
    "connected",
]
