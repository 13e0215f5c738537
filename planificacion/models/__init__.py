from .base import PlanningEntity
from .decision import DecisionOutcome, DecisionRecord, EntityType
from .objective import Goal, GoalProgress, Indicator, IndicatorKind, Objective, ObjectiveState, Priority
from .project import Activity, BudgetAllocation, Project, ProjectState

__all__ = [
    "PlanningEntity",
    "DecisionOutcome",
    "DecisionRecord",
    "EntityType",
    "Goal",
    "GoalProgress",
    "Indicator",
    "IndicatorKind",
    "Objective",
    "ObjectiveState",
    "Priority",
    "Activity",
    "BudgetAllocation",
    "Project",
    "ProjectState",
]
