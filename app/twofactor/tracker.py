"""
Prometheus metrics of the login and 2FA flow, served by /api/metrics.
"""

from functools import wraps
from prometheus_client import Counter, Histogram


# Counters
codes_issued_total = Counter(
    "two_factor_codes_issued_total", "Total number of legacy 2FA codes issued"
)
verifications_total = Counter(
    "two_factor_verifications_total", "Total number of 2FA verification attempts", ["method", "status"]
)
logins_total = Counter(
    "auth_logins_total", "Total number of password login attempts", ["status"]
)

# Histogram for request durations
auth_request_latency = Histogram(
    "auth_request_latency_seconds",
    "Time spent processing authentication requests",
    ["endpoint"]
)

def track_latency(endpoint_name):
    """Record how long the decorated endpoint takes in auth_request_latency_seconds."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            with auth_request_latency.labels(endpoint=endpoint_name).time():
                return await func(*args, **kwargs)
        return wrapper
    return decorator
