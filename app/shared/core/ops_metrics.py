"""
Operational Metrics for Costsight

Prometheus metrics for the forecasting, import and optimization paths.
"""

from prometheus_client import Counter, Histogram

# --- Forecasting ---
FORECASTS_TOTAL = Counter(
    "costsight_forecasts_total",
    "Total number of forecasts generated",
    ["model"]
)

FORECAST_LATENCY = Histogram(
    "costsight_forecast_latency_seconds",
    "Latency of forecast generation including history read",
    ["model"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5)
)

# --- Billing import ---
BILLING_ROWS_TOTAL = Counter(
    "costsight_billing_rows_total",
    "Billing rows processed by import, by outcome",
    ["dialect", "outcome"]  # accepted, dropped, failed
)

# --- Optimization ---
SUGGESTIONS_GENERATED = Counter(
    "costsight_suggestions_generated_total",
    "Optimization suggestions generated by the rule engine",
    ["action"]
)

INVENTORY_FAILURES = Counter(
    "costsight_inventory_failures_total",
    "Failed reads from the resource inventory",
    ["backend"]
)
