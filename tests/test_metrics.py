import pytest

from ticketdesk import metrics


def _family(registry, name):
    return next((f for f in registry.gather() if f.name == name), None)


def test_new_metrics():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    assert m.http_requests_total.name == "http_requests_total"
    assert m.http_request_duration.name == "http_request_duration_seconds"
    assert m.reservations_total.name == "reservations_total"
    assert m.distributed_lock_duration.name == "distributed_lock_duration_seconds"
    assert m.active_reservations.name == "active_reservations"


def test_http_requests_total():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    m.http_requests_total.with_label_values("GET", "/api/v1/events", "200").inc()
    m.http_requests_total.with_label_values("POST", "/api/v1/reservations", "201").inc()
    m.http_requests_total.with_label_values("POST", "/api/v1/reservations", "409").inc()
    family = _family(reg, "http_requests_total")
    assert family is not None
    assert len(family.metrics) == 3


def test_reservations_total():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    m.reservations_total.with_label_values("success").inc()
    m.reservations_total.with_label_values("success").inc()
    m.reservations_total.with_label_values("conflict").inc()
    m.reservations_total.with_label_values("lock_failed").inc()
    family = _family(reg, "reservations_total")
    assert len(family.metrics) == 3
    values = {s.labels["status"]: s.value for s in family.metrics}
    assert values["success"] == 2


def test_distributed_lock_duration():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    m.distributed_lock_duration.with_label_values("acquire", "success").observe(0.015)
    m.distributed_lock_duration.with_label_values("acquire", "failed").observe(0.005)
    m.distributed_lock_duration.with_label_values("release", "success").observe(0.002)
    family = _family(reg, "distributed_lock_duration_seconds")
    assert family is not None
    assert family.type == "histogram"
    assert len(family.metrics) == 3


def test_active_reservations():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    m.active_reservations.with_label_values("pending").inc()
    m.active_reservations.with_label_values("pending").inc()
    m.active_reservations.with_label_values("confirmed").inc()
    m.active_reservations.with_label_values("pending").dec()
    family = _family(reg, "active_reservations")
    assert len(family.metrics) == 2
    assert {s.labels["status"]: s.value for s in family.metrics} == {
        "pending": 1,
        "confirmed": 1,
    }


def test_http_request_duration():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    m.http_request_duration.with_label_values("GET", "/api/v1/events").observe(0.025)
    m.http_request_duration.with_label_values("POST", "/api/v1/reservations").observe(0.150)
    family = _family(reg, "http_request_duration_seconds")
    assert family is not None
    assert sum(s.count for s in family.metrics) == 2


def test_unused_families_are_not_gathered():
    reg = metrics.Registry()
    metrics.new_with_registry(reg)
    assert reg.gather() == []


def test_duplicate_registration_fails():
    reg = metrics.Registry()
    metrics.new_with_registry(reg)
    with pytest.raises(ValueError):
        metrics.new_with_registry(reg)


def test_wrong_label_count():
    reg = metrics.Registry()
    m = metrics.new_with_registry(reg)
    with pytest.raises(ValueError):
        m.reservations_total.with_label_values("a", "b")


def test_counter_cannot_decrease():
    with pytest.raises(ValueError):
        metrics.Counter().inc(-1)


def test_histogram_cumulative_buckets_are_monotonic():
    h = metrics.Histogram([0.1, 1])
    for v in (0.05, 0.5, 5):
        h.observe(v)
    counts = [c for _, c in h.cumulative()]
    assert counts == sorted(counts)
    assert counts[-1] == 3


def test_init_then_get_returns_same_instance():
    m = metrics.init()
    assert metrics.get() is m