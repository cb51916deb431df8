from prometheus_client import Counter


loyalty_points_awarded_total = Counter("loyalty_points_awarded_total", "Points credited to accounts", ["source"])
loyalty_points_redeemed_total = Counter("loyalty_points_redeemed_total", "Points spent on redemptions")
loyalty_duplicate_references_total = Counter(
    "loyalty_duplicate_references_total",
    "Awards rejected because the reference was already credited",
    ["reference_type"],
)
