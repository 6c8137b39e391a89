"""
Prometheus metrics for the reservation lifecycle engine.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., bookings created)
    - Histogram: Observations bucketed by value (e.g., sweep duration)
    - Gauge: Point-in-time value that can go up or down (e.g., armed timers)

Example:
    >>> from stay_reservations.metrics import transitions_total
    >>> transitions_total.labels(
    ...     from_state="pending", to_state="confirmed", trigger="payment"
    ... ).inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Booking Metrics
# =============================================================================

bookings_total = Counter(
    "reservations_bookings_total",
    "Booking requests handled, by outcome",
    ["outcome"],
)
"""
Counter for booking requests.

Labels:
    outcome: created, invalid_range, unavailable, forbidden, not_found, upstream_unavailable
"""

# =============================================================================
# Lifecycle Metrics
# =============================================================================

transitions_total = Counter(
    "reservations_transitions_total",
    "State transitions applied to reservations",
    ["from_state", "to_state", "trigger"],
)
"""
Counter for applied state transitions.

Labels:
    from_state: State the reservation left (or "none" on creation)
    to_state: State the reservation entered
    trigger: booking, payment, expiration, cancellation
"""

transition_conflicts_total = Counter(
    "reservations_transition_conflicts_total",
    "Conditional state updates whose precondition no longer held",
    ["trigger"],
)

late_payments_total = Counter(
    "reservations_late_payments_total",
    "Payment confirmations received for reservations already completed or cancelled",
    ["state"],
)

# =============================================================================
# Scheduler Metrics
# =============================================================================

armed_timers = Gauge(
    "reservations_armed_expiration_timers",
    "Number of in-memory expiration timers currently armed",
)

sweep_duration = Histogram(
    "reservations_sweep_duration_seconds",
    "Duration of reconciliation sweeps in seconds",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, float("inf")),
)

sweep_transitions = Counter(
    "reservations_sweep_transitions_total",
    "Reservations moved to completed by reconciliation sweeps",
)

# =============================================================================
# Upstream Metrics
# =============================================================================

upstream_requests = Counter(
    "reservations_upstream_requests_total",
    "Requests made to collaborator services",
    ["service", "status_code"],
)
"""
Counter for collaborator requests.

Labels:
    service: identity, catalog, notifications, payments
    status_code: HTTP status code, or "error" when no response was received
"""

upstream_latency = Histogram(
    "reservations_upstream_latency_seconds",
    "Collaborator request latency in seconds",
    ["service"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, float("inf")),
)

notifications_total = Counter(
    "reservations_notifications_total",
    "Outbound notifications handed to the notification service",
    ["event", "status"],
)
