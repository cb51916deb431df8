from .metrics_views import prometheus_metrics

__all__ = ["prometheus_metrics"]
