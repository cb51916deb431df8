from prometheus_client import Counter, Histogram


# Checkout Metrics
checkout_attempts_total = Counter(
    "marketplace_checkout_attempts_total", "Checkout attempts by outcome", ["status", "error"]
)
orders_placed_total = Counter("marketplace_orders_placed_total", "Total orders placed", ["status"])
order_value = Histogram(
    "marketplace_order_value",
    "Order value distribution",
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 5000, float("inf")],
)
checkout_duration = Histogram("marketplace_checkout_seconds", "Checkout transaction time")

# Stock Metrics
stock_reservation_failures = Counter("marketplace_stock_reservation_failure", "Stock reservation failures")

# Promotion Metrics
promotion_rejections_total = Counter(
    "marketplace_promotion_rejections_total", "Promotion codes rejected at checkout", ["reason"]
)

# Post-commit dispatch
post_commit_failures_total = Counter(
    "marketplace_post_commit_failures_total", "Post-commit hooks that raised", ["hook"]
)
