"""Prometheus ASGI app for /metrics with club membership business metrics.

HTTP request/response metrics come from the platform's auto-instrumentation;
this module only defines domain counters.

Usage:

    from club_membership.core.metrics import memberships_activated_total

    memberships_activated_total.labels(source="invite").inc()
"""

from prometheus_client import Counter, Histogram, make_asgi_app

clubs_created_total = Counter(
    "clubs_created_total",
    "Total number of clubs created",
    ["environment", "visibility"],
)

memberships_activated_total = Counter(
    "memberships_activated_total",
    "Memberships created or reactivated, by admission path",
    ["source"],
)

join_requests_total = Counter(
    "join_requests_total",
    "Join request submissions and reviews",
    ["outcome"],
)

invite_redemptions_total = Counter(
    "invite_redemptions_total",
    "Invite redemption attempts by outcome",
    ["outcome"],
)

permission_denials_total = Counter(
    "permission_denials_total",
    "Role checks that failed",
    ["required_role"],
)

database_query_duration_seconds = Histogram(
    "database_query_duration_seconds",
    "Database query duration in seconds",
    ["query_type"],
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0],
)

metrics_app = make_asgi_app()
