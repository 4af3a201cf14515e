"""Tests for the checkout Prometheus collector."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from contract_checkout.metrics.collector import CheckoutMetrics, MetricsCollector


@pytest.fixture
def metrics() -> CheckoutMetrics:
    return CheckoutMetrics(MetricsCollector(CollectorRegistry()))


class TestCheckoutMetrics:
    """Tests for CheckoutMetrics."""

    def test_own_registry_per_instance(self) -> None:
        assert CheckoutMetrics().registry is not CheckoutMetrics().registry

    def test_record_transaction(self, metrics: CheckoutMetrics) -> None:
        metrics.record_transaction("investment", "redirect")
        metrics.record_transaction("investment", "redirect")
        value = metrics.registry.get_sample_value(
            "checkout_transactions_total", {"kind": "investment", "outcome": "redirect"}
        )
        assert value == 2.0

    def test_record_two_factor(self, metrics: CheckoutMetrics) -> None:
        metrics.record_two_factor("rejected")
        assert metrics.registry.get_sample_value(
            "checkout_two_factor_total", {"result": "rejected"}
        ) == 1.0

    def test_record_poll(self, metrics: CheckoutMetrics) -> None:
        metrics.record_poll("pending", 10)
        assert metrics.registry.get_sample_value("checkout_poll_attempts_histogram_sum") == 10.0
        assert metrics.registry.get_sample_value(
            "checkout_poll_attempts_histogram_bucket", {"le": "8.0"}
        ) == 0.0
        assert metrics.registry.get_sample_value(
            "checkout_poll_attempts_histogram_bucket", {"le": "10.0"}
        ) == 1.0

    def test_track_signing_ok(self, metrics: CheckoutMetrics) -> None:
        with metrics.track_signing():
            pass
        assert metrics.registry.get_sample_value("checkout_signing_total", {"result": "ok"}) == 1.0
        assert metrics.registry.get_sample_value("checkout_signing_histogram_count") == 1.0

    def test_track_signing_error(self, metrics: CheckoutMetrics) -> None:
        with pytest.raises(RuntimeError), metrics.track_signing():
            raise RuntimeError("upload failed")
        assert metrics.registry.get_sample_value("checkout_signing_total", {"result": "error"}) == 1.0
