"""Agent workload tracking and scoring policies."""

from .policy import (
    PriorityWeightedPolicy,
    ProductivityAdjustedPolicy,
    SimpleCountPolicy,
    WorkloadCounts,
    WorkloadPolicy,
    get_policy,
)
from .tracker import WorkloadSnapshot, WorkloadTracker

__all__ = [
    "PriorityWeightedPolicy",
    "ProductivityAdjustedPolicy",
    "SimpleCountPolicy",
    "WorkloadCounts",
    "WorkloadPolicy",
    "WorkloadSnapshot",
    "WorkloadTracker",
    "get_policy",
]
