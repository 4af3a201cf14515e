"""Prometheus metrics for checkout and signing flows."""

from contract_checkout.metrics.collector import CheckoutMetrics, MetricsCollector

__all__ = ["CheckoutMetrics", "MetricsCollector"]
