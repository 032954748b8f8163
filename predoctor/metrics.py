from prometheus_client import Counter, Histogram
# Prometheus metrics definitions

# Assessment requests by outcome:
# ok, limit_reached, provider_error, malformed, not_configured, bad_request
ai_checks_total = Counter(
    "ai_checks_total", "Total AI pre-assessment requests", ["status"]
)

# Follow-up controller decisions (followup / final)
ai_followup_total = Counter(
    "ai_followup_total", "Follow-up conversation decisions", ["mode"]
)

# Quota rejects when a hospital hits its monthly cap
quota_reject_total = Counter(
    "quota_reject_total", "Number of quota rejected requests"
)

# Provider failures by provider and kind (timeout, error, malformed)
ai_provider_errors_total = Counter(
    "ai_provider_errors_total", "Text-generation provider failures", ["provider", "kind"]
)

_provider_latency_buckets = (
    0.5,
    1.0,
    2.0,
    4.0,
    8.0,
    16.0,
    32.0,
)

ai_provider_latency_seconds = Histogram(
    "ai_provider_latency_seconds",
    "Text-generation provider call latency",
    ["provider"],
    buckets=_provider_latency_buckets,
)

ai_tokens_used_total = Counter(
    "ai_tokens_used_total", "Tokens reported by providers", ["provider"]
)

# Model recommended a doctor that is not on the tenant's active roster
doctor_recommendation_dropped_total = Counter(
    "doctor_recommendation_dropped_total", "Dropped doctor recommendations"
)

usage_log_failures_total = Counter(
    "usage_log_failures_total", "Failed usage log writes"
)

# Requests rejected because the resolved hospital is not active
tenant_blocked_total = Counter(
    "tenant_blocked_total", "Requests blocked for inactive tenants"
)

notification_fail_total = Counter(
    "notification_fail_total", "Failed report notification emails"
)

__all__ = [
    "ai_checks_total",
    "ai_followup_total",
    "quota_reject_total",
    "ai_provider_errors_total",
    "ai_provider_latency_seconds",
    "ai_tokens_used_total",
    "doctor_recommendation_dropped_total",
    "usage_log_failures_total",
    "tenant_blocked_total",
    "notification_fail_total",
]
