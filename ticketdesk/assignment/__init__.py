"""Auto-assignment scheduler."""

from .scheduler import AssignmentScheduler, AssignmentStats, AutoAssignSummary, SkippedTicket

__all__ = ["AssignmentScheduler", "AssignmentStats", "AutoAssignSummary", "SkippedTicket"]
