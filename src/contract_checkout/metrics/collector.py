"""Metrics collector — Prometheus counters and histograms for checkout flows.

- ``checkout_transactions_total`` counter-vec (kind, outcome)
- ``checkout_two_factor_total`` counter-vec (result)
- ``checkout_poll_attempts_histogram``
- ``checkout_poll_outcomes_total`` counter-vec (outcome)
- ``checkout_signing_histogram``
- ``checkout_signing_total`` counter-vec (result)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "checkout"

# Poll attempt buckets follow the default 10-attempt ceiling.
_POLL_BUCKETS = (1, 2, 3, 5, 8, 10, 15, 20)


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`CheckoutMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(
        self,
        name: str,
        doc: str,
        labels: tuple[str, ...] = (),
        buckets: tuple[float, ...] | None = None,
    ) -> Histogram:
        """Register and return a Histogram."""
        if buckets is None:
            return Histogram(name, doc, labels, registry=self._registry)
        return Histogram(name, doc, labels, registry=self._registry, buckets=buckets)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class CheckoutMetrics:
    """High-level checkout flow metrics."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._transactions = self._collector.counter(
            f"{_PREFIX}_transactions",
            "Initiated transactions by kind and first outcome",
            ("kind", "outcome"),
        )
        self._two_factor = self._collector.counter(
            f"{_PREFIX}_two_factor",
            "Step-up verification submissions by result",
            ("result",),
        )
        self._poll_attempts = self._collector.histogram(
            f"{_PREFIX}_poll_attempts_histogram",
            "Status checks issued per reconciliation run",
            buckets=_POLL_BUCKETS,
        )
        self._poll_outcomes = self._collector.counter(
            f"{_PREFIX}_poll_outcomes",
            "Reconciliation runs by outcome",
            ("outcome",),
        )
        self._signing = self._collector.histogram(
            f"{_PREFIX}_signing_histogram",
            "Duration of contract signing submissions",
        )
        self._signing_results = self._collector.counter(
            f"{_PREFIX}_signing",
            "Contract signing submissions by result",
            ("result",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    def record_transaction(self, kind: str, outcome: str) -> None:
        """Count an initiation and how it first resolved."""
        self._transactions.labels(kind=kind, outcome=outcome).inc()

    def record_two_factor(self, result: str) -> None:
        self._two_factor.labels(result=result).inc()

    def record_poll(self, outcome: str, attempts: int) -> None:
        """Record one finished reconciliation run."""
        self._poll_outcomes.labels(outcome=outcome).inc()
        self._poll_attempts.observe(attempts)

    @contextmanager
    def track_signing(self) -> Iterator[None]:
        """Track the duration and result of a signing submission."""
        start = time.monotonic()
        result = "error"
        try:
            yield
            result = "ok"
        finally:
            self._signing.observe(time.monotonic() - start)
            self._signing_results.labels(result=result).inc()
