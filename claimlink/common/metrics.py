from prometheus_client import Counter, Gauge, Histogram

# Basic metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

CLAIM_OUTCOMES = Counter("claim_attempts_total", "Claim attempts by outcome", ["outcome"])

ORDERS_TOTAL = Gauge("claimlink_orders", "Orders in the ledger")
PRODUCTS_TOTAL = Gauge("claimlink_products", "Products in the catalog")
CLAIMED_ORDERS_TOTAL = Gauge("claimlink_claimed_orders", "Orders claimed at least once")


def normalize_endpoint(path: str) -> str:
    # Group paths to keep label cardinality bounded
    if path.startswith("/api/"):
        return path.rstrip("/")
    if path in ("/health", "/metrics"):
        return path
    return "other"
