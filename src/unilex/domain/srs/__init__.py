# Domain SRS Package
from .models import ActivityCounts, ActivityType, DueEntry, Outcome, PerformanceData, SchedulerState

__all__ = [
    "ActivityCounts",
    "ActivityType",
    "DueEntry",
    "Outcome",
    "PerformanceData",
    "SchedulerState",
]
