import pytest

from ticketdesk.metrics import MetricsRegistry


def test_registry_declares_default_metrics():
    registry = MetricsRegistry()

    snapshot = registry.snapshot()

    assert snapshot["ticket_assignments_total"] == {"type": "counter", "labels": ["mode"], "values": {}}
    assert snapshot["auto_assign_batch_duration_seconds"]["type"] == "distribution"


def test_counter_labels_are_validated():
    registry = MetricsRegistry()
    counter = registry.counter("ticket_assignments_total")

    counter.inc(labels={"mode": "auto"})
    counter.inc(2, labels={"mode": "manual"})

    assert counter.value({"mode": "auto"}) == 1
    assert registry.snapshot()["ticket_assignments_total"]["values"] == {
        "auto": {"value": 1.0},
        "manual": {"value": 2.0},
    }
    with pytest.raises(ValueError):
        counter.inc()
    with pytest.raises(ValueError):
        counter.inc(labels={"mode": "auto", "agent": "agent-a"})


def test_metric_names_keep_their_type():
    registry = MetricsRegistry()

    with pytest.raises(TypeError):
        registry.distribution("tickets_created_total")


def test_time_distribution_records_an_observation():
    registry = MetricsRegistry()

    with registry.time_distribution("auto_assign_batch_duration_seconds"):
        pass

    values = registry.snapshot()["auto_assign_batch_duration_seconds"]["values"][""]
    assert values["count"] == 1.0
    assert values["avg"] == values["sum"]
