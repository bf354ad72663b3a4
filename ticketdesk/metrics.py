"""In-process metrics for ticket operations and background jobs."""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Iterable, Iterator, Mapping

LabelValues = tuple[str, ...]


class Metric:
    """Base class for labelled metrics."""

    kind = "metric"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] = ()) -> None:
        self.name = name
        self.description = description
        self.label_names: LabelValues = tuple(label_names)
        self._lock = Lock()

    def _key(self, labels: Mapping[str, str] | None) -> LabelValues:
        labels = labels or {}
        missing = [label for label in self.label_names if label not in labels]
        if missing:
            raise ValueError(f"Metric '{self.name}' is missing labels {missing}")
        extra = set(labels) - set(self.label_names)
        if extra:
            raise ValueError(f"Metric '{self.name}' does not accept labels {sorted(extra)}")
        return tuple(str(labels[label]) for label in self.label_names)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:  # pragma: no cover - interface
        raise NotImplementedError


class CounterMetric(Metric):
    """Monotonic counter."""

    kind = "counter"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] = ()) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: dict[LabelValues, float] = defaultdict(float)

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] += amount

    def value(self, labels: Mapping[str, str] | None = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        with self._lock:
            return {key: {"value": value} for key, value in self._values.items()}


@dataclass
class _Summary:
    count: int = 0
    total: float = 0.0
    maximum: float = 0.0

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.maximum = max(self.maximum, value)


class DistributionMetric(Metric):
    """Count, sum, max and average of observed values."""

    kind = "distribution"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] = ()) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: dict[LabelValues, _Summary] = defaultdict(_Summary)

    def observe(self, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key].observe(value)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        with self._lock:
            return {
                key: {
                    "count": float(summary.count),
                    "sum": summary.total,
                    "max": summary.maximum,
                    "avg": summary.total / summary.count if summary.count else 0.0,
                }
                for key, summary in self._values.items()
            }


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a metric that should exist in the registry."""

    name: str
    kind: str
    description: str
    label_names: LabelValues = ()


DEFAULT_METRIC_DEFINITIONS: tuple[MetricDefinition, ...] = (
    MetricDefinition("tickets_created_total", "counter", "Tickets created."),
    MetricDefinition(
        "ticket_status_changes_total", "counter", "Committed status changes.", ("to_status",)
    ),
    MetricDefinition("ticket_comments_total", "counter", "Comments appended to tickets."),
    MetricDefinition("ticket_assignments_total", "counter", "Committed assignments.", ("mode",)),
    MetricDefinition("ticket_write_conflicts_total", "counter", "Optimistic version conflicts retried."),
    MetricDefinition("auto_assign_skipped_total", "counter", "Tickets skipped by auto-assign batches."),
    MetricDefinition(
        "auto_assign_batch_duration_seconds", "distribution", "Duration of auto-assign batches."
    ),
    MetricDefinition("job_runs_total", "counter", "Background job runs.", ("job",)),
    MetricDefinition("job_failures_total", "counter", "Failed background job runs.", ("job",)),
)


class MetricsRegistry:
    """Registry holding metric instances by name."""

    def __init__(self, definitions: Iterable[MetricDefinition] = DEFAULT_METRIC_DEFINITIONS) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()
        for definition in definitions:
            if definition.kind == "counter":
                self.counter(definition.name, description=definition.description, label_names=definition.label_names)
            else:
                self.distribution(
                    definition.name, description=definition.description, label_names=definition.label_names
                )

    def _get_or_create(self, name: str, factory, expected: type[Metric]) -> Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = factory()
        if not isinstance(metric, expected):
            raise TypeError(f"Metric '{name}' already exists with a different type")
        return metric

    def counter(self, name: str, *, description: str = "", label_names: Iterable[str] = ()) -> CounterMetric:
        return self._get_or_create(  # type: ignore[return-value]
            name,
            lambda: CounterMetric(name, description=description, label_names=label_names),
            CounterMetric,
        )

    def distribution(
        self, name: str, *, description: str = "", label_names: Iterable[str] = ()
    ) -> DistributionMetric:
        return self._get_or_create(  # type: ignore[return-value]
            name,
            lambda: DistributionMetric(name, description=description, label_names=label_names),
            DistributionMetric,
        )

    def snapshot(self) -> dict[str, dict[str, object]]:
        """Return a JSON-friendly snapshot; label tuples are joined with ``,``."""

        with self._lock:
            metrics = list(self._metrics.values())
        return {
            metric.name: {
                "type": metric.kind,
                "labels": list(metric.label_names),
                "values": {",".join(key): values for key, values in metric.snapshot().items()},
            }
            for metric in metrics
        }

    @contextmanager
    def time_distribution(self, name: str, *, labels: Mapping[str, str] | None = None) -> Iterator[None]:
        metric = self.distribution(name)
        start = perf_counter()
        try:
            yield
        finally:
            metric.observe(perf_counter() - start, labels=labels)


metrics_registry = MetricsRegistry()

__all__ = [
    "CounterMetric",
    "DEFAULT_METRIC_DEFINITIONS",
    "DistributionMetric",
    "MetricDefinition",
    "MetricsRegistry",
    "metrics_registry",
]
