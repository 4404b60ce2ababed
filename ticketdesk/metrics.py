"""Application metrics: counters, gauges and histograms grouped by labels."""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Sample:
    """One labelled series within a family."""

    labels: dict
    value: float
    count: int = 0
    buckets: tuple = ()


@dataclass(frozen=True)
class MetricFamily:
    name: str
    help: str
    type: str
    metrics: list = field(default_factory=list)


class Gauge:
    def __init__(self) -> None:
        self.value = 0.0
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value += amount

    def dec(self, amount: float = 1.0) -> None:
        self.inc(-amount)

    def set(self, value: float) -> None:
        with self._lock:
            self.value = float(value)


class Counter(Gauge):
    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease")
        super().inc(amount)

    def dec(self, amount: float = 1.0) -> None:
        raise AttributeError("counter cannot decrease")

    def set(self, value: float) -> None:
        raise AttributeError("counter cannot be set")


class Histogram:
    def __init__(self, buckets) -> None:
        self.bounds = tuple(sorted(buckets))
        self._counts = [0] * (len(self.bounds) + 1)
        self.sum = 0.0
        self.count = 0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            self._counts[bisect.bisect_left(self.bounds, value)] += 1
            self.sum += value
            self.count += 1

    def cumulative(self) -> tuple:
        totals, running = [], 0
        for bound, n in zip(self.bounds + (float("inf"),), self._counts):
            running += n
            totals.append((bound, running))
        return tuple(totals)


class _Vec:
    type = ""

    def __init__(self, name: str, help: str, label_names) -> None:
        self.name = name
        self.help = help
        self.label_names = tuple(label_names)
        self._children: dict = {}
        self._lock = threading.Lock()

    def _make(self):
        raise NotImplementedError

    def _child(self, args):
        if len(args) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(str(a) for a in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._children[key] = self._make()
            return child

    def _sample(self, labels, child) -> Sample:
        return Sample(labels=labels, value=child.value)

    def _family(self) -> MetricFamily:
        with self._lock:
            items = sorted(self._children.items())
        samples = [self._sample(dict(zip(self.label_names, k)), c) for k, c in items]
        return MetricFamily(self.name, self.help, self.type, samples)


class CounterVec(_Vec):
    type = "counter"

    def _make(self) -> Counter:
        return Counter()

    def with_label_values(self, *args) -> Counter:
        """Return the counter for these label values, creating it on first use."""
        return self._child(args)

    def collect(self) -> MetricFamily:
        return self._family()


class GaugeVec(_Vec):
    type = "gauge"

    def _make(self) -> Gauge:
        return Gauge()

    def with_label_values(self, *args) -> Gauge:
        """Return the gauge for these label values, creating it on first use."""
        return self._child(args)

    def collect(self) -> MetricFamily:
        return self._family()


class HistogramVec(_Vec):
    type = "histogram"

    def __init__(self, name: str, help: str, label_names, buckets) -> None:
        super().__init__(name, help, label_names)
        self.buckets = tuple(buckets)

    def _make(self) -> Histogram:
        return Histogram(self.buckets)

    def _sample(self, labels, child) -> Sample:
        return Sample(labels=labels, value=child.sum, count=child.count, buckets=child.cumulative())

    def with_label_values(self, *args) -> Histogram:
        """Return the histogram for these label values, creating it on first use."""
        return self._child(args)

    def collect(self) -> MetricFamily:
        return self._family()


class Registry:
    def __init__(self) -> None:
        self._collectors: dict = {}

    def register(self, *args) -> None:
        """Register collectors; a name already taken raises ValueError."""
        for collector in args:
            if collector.name in self._collectors:
                raise ValueError(f"duplicate metric: {collector.name}")
            self._collectors[collector.name] = collector

    def gather(self) -> list:
        families = (c.collect() for c in list(self._collectors.values()))
        return sorted((f for f in families if f.metrics), key=lambda f: f.name)


DEFAULT_REGISTRY = Registry()


@dataclass
class Metrics:
    http_requests_total: CounterVec
    http_request_duration: HistogramVec
    reservations_total: CounterVec
    distributed_lock_duration: HistogramVec
    active_reservations: GaugeVec


def new_with_registry(registry: Registry) -> Metrics:
    m = Metrics(
        http_requests_total=CounterVec(
            "http_requests_total", "Total number of HTTP requests",
            ["method", "path", "status_code"],
        ),
        http_request_duration=HistogramVec(
            "http_request_duration_seconds", "HTTP request latency in seconds",
            ["method", "path"],
            [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
        ),
        reservations_total=CounterVec(
            "reservations_total", "Total number of reservation attempts", ["status"],
        ),
        distributed_lock_duration=HistogramVec(
            "distributed_lock_duration_seconds", "Time spent on distributed lock operations",
            ["operation", "status"],
            [0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1],
        ),
        active_reservations=GaugeVec(
            "active_reservations", "Current number of active reservations", ["status"],
        ),
    )
    registry.register(
        m.http_requests_total,
        m.http_request_duration,
        m.reservations_total,
        m.distributed_lock_duration,
        m.active_reservations,
    )
    return m


def new() -> Metrics:
    return new_with_registry(DEFAULT_REGISTRY)


_default: Optional[Metrics] = None


def init() -> Metrics:
    global _default
    _default = new()
    return _default


def get() -> Optional[Metrics]:
    return _default