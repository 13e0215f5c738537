from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from planificacion.core.exceptions import Precondition
from planificacion.core.permissions import Capability, Module, PermissionResolver
from planificacion.models.decision import DecisionOutcome, EntityType
from planificacion.models.objective import Objective, ObjectiveState
from planificacion.workflow.engine import EntityWorkflow, Transition
from planificacion.workflow.guards import core_fields_only, has_at_least_one, require_justification


class ObjectiveAction(str, Enum):
    SUBMIT_FOR_VALIDATION = "submitForValidation"
    APPROVE = "approve"
    REJECT = "reject"
    EDIT = "edit"


has_goals = has_at_least_one(
    "goals",
    Precondition.AT_LEAST_ONE_GOAL,
    "El objetivo requiere al menos una meta para enviarse a validación",
)
editable_fields_only = core_fields_only(Objective.CORE_FIELDS)


class ObjectiveWorkflow(EntityWorkflow[Objective, ObjectiveState]):
    """Flujo de validación de objetivos estratégicos.

    BORRADOR -> EN_VALIDACION -> APROBADO (terminal) | RECHAZADO -> BORRADOR
    """

    entity_type = EntityType.OBJETIVO
    module = Module.GESTION_OBJETIVOS
    initial_state = ObjectiveState.BORRADOR

    TRANSITIONS = (
        Transition(
            ObjectiveState.BORRADOR,
            ObjectiveAction.SUBMIT_FOR_VALIDATION.value,
            ObjectiveState.EN_VALIDACION,
            Capability.SEND_TO_VALIDATION,
            preconditions=(has_goals,),
        ),
        Transition(
            ObjectiveState.EN_VALIDACION,
            ObjectiveAction.APPROVE.value,
            ObjectiveState.APROBADO,
            Capability.VALIDATE,
            decision=DecisionOutcome.APROBADO,
        ),
        Transition(
            ObjectiveState.EN_VALIDACION,
            ObjectiveAction.REJECT.value,
            ObjectiveState.RECHAZADO,
            Capability.VALIDATE,
            payload_guards=(require_justification,),
            decision=DecisionOutcome.RECHAZADO,
        ),
        # Editar un objetivo rechazado siempre lo devuelve a BORRADOR
        Transition(
            ObjectiveState.RECHAZADO,
            ObjectiveAction.EDIT.value,
            ObjectiveState.BORRADOR,
            Capability.REGISTER_EDIT,
            payload_guards=(editable_fields_only,),
            applies_changes=True,
        ),
        Transition(
            ObjectiveState.BORRADOR,
            ObjectiveAction.EDIT.value,
            ObjectiveState.BORRADOR,
            Capability.REGISTER_EDIT,
            payload_guards=(editable_fields_only,),
            applies_changes=True,
        ),
        Transition(
            ObjectiveState.EN_VALIDACION,
            ObjectiveAction.EDIT.value,
            ObjectiveState.EN_VALIDACION,
            Capability.REGISTER_EDIT,
            locked=True,
        ),
        Transition(
            ObjectiveState.APROBADO,
            ObjectiveAction.EDIT.value,
            ObjectiveState.APROBADO,
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
