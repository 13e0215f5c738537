from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from planificacion.core.exceptions import Precondition
from planificacion.core.permissions import Capability, Module, PermissionResolver
from planificacion.models.decision import DecisionOutcome, EntityType
from planificacion.models.project import Project, ProjectState
from planificacion.workflow.engine import EntityWorkflow, Transition
from planificacion.workflow.guards import (
    allocations_within_budget,
    core_fields_only,
    has_at_least_one,
    is_positive,
    require_justification,
)


class ProjectAction(str, Enum):
    SUBMIT_FOR_REVIEW = "submitForReview"
    APPROVE = "approve"
    REJECT = "reject"
    EDIT = "edit"


has_budget = is_positive(
    "total_budget",
    Precondition.POSITIVE_BUDGET,
    "El proyecto requiere un presupuesto total mayor a cero",
)
has_activities = has_at_least_one(
    "activities",
    Precondition.AT_LEAST_ONE_ACTIVITY,
    "El proyecto requiere al menos una actividad registrada",
)
editable_fields_only = core_fields_only(Project.CORE_FIELDS)


class ProjectWorkflow(EntityWorkflow[Project, ProjectState]):
    """Flujo de revisión de proyectos de inversión.

    Borrador -> Enviado -> Aprobado (terminal) | Rechazado -> Borrador
    """

    entity_type = EntityType.PROYECTO
    module = Module.PROYECTOS_INVERSION
    initial_state = ProjectState.BORRADOR

    TRANSITIONS = (
        Transition(
            ProjectState.BORRADOR,
            ProjectAction.SUBMIT_FOR_REVIEW.value,
            ProjectState.ENVIADO,
            Capability.SEND_TO_REVIEW,
            preconditions=(has_budget, has_activities, allocations_within_budget),
        ),
        Transition(
            ProjectState.ENVIADO,
            ProjectAction.APPROVE.value,
            ProjectState.APROBADO,
            Capability.APPROVE,
            decision=DecisionOutcome.APROBADO,
        ),
        Transition(
            ProjectState.ENVIADO,
            ProjectAction.REJECT.value,
            ProjectState.RECHAZADO,
            Capability.APPROVE,
            payload_guards=(require_justification,),
            decision=DecisionOutcome.RECHAZADO,
        ),
        Transition(
            ProjectState.RECHAZADO,
            ProjectAction.EDIT.value,
            ProjectState.BORRADOR,
            Capability.REGISTER_EDIT,
            payload_guards=(editable_fields_only,),
            applies_changes=True,
        ),
        Transition(
            ProjectState.BORRADOR,
            ProjectAction.EDIT.value,
            ProjectState.BORRADOR,
            Capability.REGISTER_EDIT,
            payload_guards=(editable_fields_only,),
            applies_changes=True,
        ),
        Transition(
            ProjectState.ENVIADO,
            ProjectAction.EDIT.value,
            ProjectState.ENVIADO,
            Capability.REGISTER_EDIT,
            locked=True,
        ),
        Transition(
            ProjectState.APROBADO,
            ProjectAction.EDIT.value,
            ProjectState.APROBADO,
            Capability.REGISTER_EDIT,
            locked=True,
        ),
    )

    def __init__(
        self,
        *,
        resolver: Optional[PermissionResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(self.TRANSITIONS, resolver=resolver, clock=clock)
