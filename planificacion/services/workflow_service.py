import logging
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from weakref import WeakValueDictionary

from planificacion.core.exceptions import (
    Conflict,
    EntityNotFoundException,
    InvalidTransition,
    NotEditableInCurrentState,
    Precondition,
    PreconditionNotMet,
)
from planificacion.core.permissions import Capability, Module, PermissionResolver, permission_resolver
from planificacion.crud.store import Entity, PlanningStore
from planificacion.models.base import utcnow
from planificacion.models.decision import DecisionRecord, EntityType
from planificacion.models.objective import Goal, Indicator, Objective
from planificacion.models.project import Activity, BudgetAllocation, Project, ProjectState
from planificacion.schemas.principal import Principal
from planificacion.schemas.workflow import ActionRequest, TransitionPayload, WorkflowResult
from planificacion.workflow.engine import EntityWorkflow
from planificacion.workflow.objective import ObjectiveAction, ObjectiveWorkflow
from planificacion.workflow.project import ProjectAction, ProjectWorkflow

logger = logging.getLogger(__name__)


class PlanningWorkflowService:
    """Orquesta permisos, flujo y persistencia de objetivos y proyectos.

    Serializa las operaciones por entidad: dos intentos concurrentes desde el
    mismo estado no pueden tener éxito ambos; el segundo observa el estado ya
    cambiado y falla con InvalidTransition.
    """

    SUBMIT_ACTIONS = {
        EntityType.OBJETIVO: ObjectiveAction.SUBMIT_FOR_VALIDATION.value,
        EntityType.PROYECTO: ProjectAction.SUBMIT_FOR_REVIEW.value,
    }
    APPROVE_ACTION = "approve"
    REJECT_ACTION = "reject"
    EDIT_ACTION = "edit"

    def __init__(
        self,
        store: PlanningStore,
        *,
        resolver: Optional[PermissionResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.resolver = resolver or permission_resolver
        self.clock = clock or utcnow
        self.workflows: Dict[EntityType, EntityWorkflow] = {
            EntityType.OBJETIVO: ObjectiveWorkflow(resolver=self.resolver, clock=self.clock),
            EntityType.PROYECTO: ProjectWorkflow(resolver=self.resolver, clock=self.clock),
        }
        # Una entrada vive mientras algún hilo retiene el candado
        self._locks: "WeakValueDictionary[Tuple[EntityType, int], Lock]" = WeakValueDictionary()
        self._locks_guard = Lock()

    def workflow_for(self, entity_type: EntityType) -> EntityWorkflow:
        return self.workflows[entity_type]

    # ----------------- Transiciones ------------------------------------------
    def execute(self, principal: Principal, request: ActionRequest) -> WorkflowResult:
        """Carga la entidad, intenta la transición y persiste el resultado."""
        payload = request.payload
        return self._run(
            principal,
            request.entity_type,
            request.entity_id,
            lambda entity: (request.action, payload),
        )

    def submit(self, principal: Principal, entity_type: EntityType, entity_id: int) -> WorkflowResult:
        request = ActionRequest(
            entity_type=entity_type, entity_id=entity_id, action=self.SUBMIT_ACTIONS[entity_type]
        )
        return self.execute(principal, request)

    def approve(
        self,
        principal: Principal,
        entity_type: EntityType,
        entity_id: int,
        justification: Optional[str] = None,
    ) -> WorkflowResult:
        request = ActionRequest(
            entity_type=entity_type,
            entity_id=entity_id,
            action=self.APPROVE_ACTION,
            payload=TransitionPayload(justification=justification),
        )
        return self.execute(principal, request)

    def reject(
        self,
        principal: Principal,
        entity_type: EntityType,
        entity_id: int,
        justification: Optional[str],
    ) -> WorkflowResult:
        request = ActionRequest(
            entity_type=entity_type,
            entity_id=entity_id,
            action=self.REJECT_ACTION,
            payload=TransitionPayload(justification=justification),
        )
        return self.execute(principal, request)

    def edit(
        self, principal: Principal, entity_type: EntityType, entity_id: int, **changes: Any
    ) -> WorkflowResult:
        """Modifica campos principales; desde RECHAZADO devuelve la entidad a borrador."""
        return self._edit_with(principal, entity_type, entity_id, lambda entity: changes)

    # ----------------- Hijos (metas, actividades, presupuesto) ----------------
    def add_goal(self, principal: Principal, objective_id: int, goal: Goal) -> WorkflowResult:
        def build(objective: Objective) -> Dict[str, Any]:
            new_goal = goal if goal.id is not None else goal.model_copy(update={"id": _next_id(objective.goals)})
            return {"goals": [*objective.goals, new_goal]}

        return self._edit_with(principal, EntityType.OBJETIVO, objective_id, build)

    def add_activity(self, principal: Principal, project_id: int, activity: Activity) -> WorkflowResult:
        def build(project: Project) -> Dict[str, Any]:
            new_activity = (
                activity
                if activity.id is not None
                else activity.model_copy(update={"id": _next_id(project.activities)})
            )
            return {"activities": [*project.activities, new_activity]}

        return self._edit_with(principal, EntityType.PROYECTO, project_id, build)

    def add_budget_allocation(
        self, principal: Principal, project_id: int, allocation: BudgetAllocation
    ) -> WorkflowResult:
        def build(project: Project) -> Dict[str, Any]:
            new_allocation = (
                allocation
                if allocation.id is not None
                else allocation.model_copy(update={"id": _next_id(project.budget_allocations)})
            )
            return {"budget_allocations": [*project.budget_allocations, new_allocation]}

        return self._edit_with(principal, EntityType.PROYECTO, project_id, build)

    def add_indicator(
        self, principal: Principal, objective_id: int, goal_id: int, indicator: Indicator
    ) -> WorkflowResult:
        """Agrega un indicador a una meta; forma parte de la definición del objetivo."""

        def build(objective: Objective) -> Dict[str, Any]:
            goal = _require_goal(objective, goal_id)
            new_indicator = (
                indicator
                if indicator.id is not None
                else indicator.model_copy(update={"id": _next_id(goal.indicators)})
            )
            goal_data = goal.model_dump()
            goal_data["indicators"].append(new_indicator.model_dump())
            return {"goals": _replace_goal(objective, goal_id, goal_data)}

        return self._edit_with(principal, EntityType.OBJETIVO, objective_id, build)

    def edit_indicator(
        self, principal: Principal, objective_id: int, goal_id: int, indicator_id: int, **changes: Any
    ) -> WorkflowResult:
        def build(objective: Objective) -> Dict[str, Any]:
            goal_data = _require_goal(objective, goal_id).model_dump()
            if not any(item["id"] == indicator_id for item in goal_data["indicators"]):
                raise EntityNotFoundException("INDICADOR", indicator_id)
            goal_data["indicators"] = [
                {**item, **changes} if item["id"] == indicator_id else item
                for item in goal_data["indicators"]
            ]
            return {"goals": _replace_goal(objective, goal_id, goal_data)}

        return self._edit_with(principal, EntityType.OBJETIVO, objective_id, build)

    def update_goal_value(
        self, principal: Principal, objective_id: int, goal_id: int, current_value: Any
    ) -> WorkflowResult:
        """Registra el valor medido de una meta.

        Es una medición y no una edición de campos principales: se admite en
        cualquier estado del objetivo, no cambia su estado ni emite decisión.
        El estado de avance de la meta se deriva del nuevo valor.
        """
        entity_type = EntityType.OBJETIVO
        workflow = self.workflow_for(entity_type)
        with self._entity_lock(entity_type, objective_id):
            objective = self._load(entity_type, objective_id)
            denied = self.resolver.check(principal, workflow.module, Capability.REGISTER_EDIT)
            if denied is not None:
                return WorkflowResult.fail(denied)
            if not objective.is_active:
                return WorkflowResult.fail(
                    InvalidTransition(f"{entity_type.value} {objective_id} está inactivo")
                )
            goal_data = {**_require_goal(objective, goal_id).model_dump(), "current_value": current_value}
            applied = workflow.apply_changes(
                objective, principal, goals=_replace_goal(objective, goal_id, goal_data)
            )
            if not applied.ok:
                return applied
            result = self._persist(entity_type, applied)
        if result.ok:
            goal = result.entity.get_goal(goal_id)
            logger.info(
                "Meta %s del objetivo %s: valor %s (%s)",
                goal_id,
                objective_id,
                goal.current_value,
                goal.progress.value,
            )
        return result

    # ----------------- Alta y baja lógica -------------------------------------
    def create_objective(self, principal: Principal, objective: Objective) -> WorkflowResult:
        return self._create(principal, EntityType.OBJETIVO, objective)

    def create_project(self, principal: Principal, project: Project) -> WorkflowResult:
        if project.responsible_id is None:
            project = project.with_changes(responsible_id=principal.id)
        return self._create(principal, EntityType.PROYECTO, project)

    def deactivate_objective(self, principal: Principal, objective_id: int) -> WorkflowResult:
        return self._deactivate(principal, EntityType.OBJETIVO, objective_id)

    def deactivate_project(self, principal: Principal, project_id: int) -> WorkflowResult:
        """Solo un proyecto en Borrador (aún no enviado) puede darse de baja."""
        return self._deactivate(
            principal,
            EntityType.PROYECTO,
            project_id,
            allowed_states=(ProjectState.BORRADOR,),
        )

    # ----------------- Consultas ----------------------------------------------
    def history(self, entity_type: EntityType, entity_id: int) -> Tuple[DecisionRecord, ...]:
        return self.store.history(entity_type, entity_id)

    def available_actions(self, principal: Principal, entity_type: EntityType, entity_id: int) -> List[str]:
        entity = self._load(entity_type, entity_id)
        return self.workflow_for(entity_type).available_actions(entity, principal)

    def module_flags(self, principal: Principal) -> Dict[Module, Dict[str, bool]]:
        return self.resolver.module_flags(principal)

    # ----------------- Internos -----------------------------------------------
    def _edit_with(
        self,
        principal: Principal,
        entity_type: EntityType,
        entity_id: int,
        build_changes: Callable[[Entity], Dict[str, Any]],
    ) -> WorkflowResult:
        return self._run(
            principal,
            entity_type,
            entity_id,
            lambda entity: (self.EDIT_ACTION, TransitionPayload(changes=build_changes(entity))),
        )

    def _run(
        self,
        principal: Principal,
        entity_type: EntityType,
        entity_id: int,
        build_action: Callable[[Entity], Tuple[str, Optional[TransitionPayload]]],
    ) -> WorkflowResult:
        workflow = self.workflow_for(entity_type)
        with self._entity_lock(entity_type, entity_id):
            entity = self._load(entity_type, entity_id)
            action, payload = build_action(entity)
            result = workflow.attempt_transition(entity, action, principal, payload)
            if not result.ok:
                return result
            return self._persist(entity_type, result)

    def _persist(self, entity_type: EntityType, result: WorkflowResult) -> WorkflowResult:
        """Guarda la entidad y su decisión como una sola unidad.

        El código se verifica dentro de la misma transacción que el guardado.
        """
        entity = result.entity
        with self.store.transaction():
            duplicate = self.store.find_by_code(entity_type, entity.code)
            if duplicate is not None and duplicate.id != entity.id:
                logger.info(
                    "%s %s: código %s ya registrado en %s", entity_type.value, entity.id, entity.code, duplicate.id
                )
                return WorkflowResult.fail(_duplicate_code(entity.code, duplicate.id))
            saved = self.store.save_entity(entity)
            if saved is None:
                logger.warning(
                    "Conflicto de concurrencia al guardar %r (versión %s)",
                    entity,
                    entity.version,
                )
                return WorkflowResult.fail(Conflict(context={"entity_id": entity.id}))
            if result.decision is not None:
                self.store.append_decision(result.decision)
        return WorkflowResult.success(saved, result.decision)

    def _create(self, principal: Principal, entity_type: EntityType, entity: Entity) -> WorkflowResult:
        workflow = self.workflow_for(entity_type)
        denied = self.resolver.check(principal, workflow.module, Capability.REGISTER_EDIT)
        if denied is not None:
            return WorkflowResult.fail(denied)

        with self.store.transaction():
            duplicate = self.store.find_by_code(entity_type, entity.code)
            if duplicate is not None:
                return WorkflowResult.fail(_duplicate_code(entity.code, duplicate.id))
            now = self.clock()
            created = self.store.add_entity(
                entity_type,
                entity.with_changes(
                    state=workflow.initial_state,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                    created_by=principal.id,
                    updated_by=principal.id,
                ),
            )
        logger.info("%s %s creado por %s", entity_type.value, created.id, principal.id)
        return WorkflowResult.success(created)

    def _deactivate(
        self,
        principal: Principal,
        entity_type: EntityType,
        entity_id: int,
        allowed_states: Optional[Tuple[Any, ...]] = None,
    ) -> WorkflowResult:
        workflow = self.workflow_for(entity_type)
        with self._entity_lock(entity_type, entity_id):
            entity = self._load(entity_type, entity_id)
            denied = self.resolver.check(principal, workflow.module, Capability.REGISTER_EDIT)
            if denied is not None:
                return WorkflowResult.fail(denied)
            if not entity.is_active:
                return WorkflowResult.fail(
                    InvalidTransition(f"{entity_type.value} {entity_id} ya está inactivo")
                )
            if allowed_states is not None and entity.state not in allowed_states:
                return WorkflowResult.fail(
                    NotEditableInCurrentState(
                        f"{entity_type.value} solo puede darse de baja en estado "
                        f"{', '.join(state.value for state in allowed_states)}"
                    )
                )
            deactivated = entity.soft_delete(by=principal.id, at=self.clock())
            result = self._persist(entity_type, WorkflowResult.success(deactivated))
        if result.ok:
            logger.info("%s %s desactivado por %s", entity_type.value, entity_id, principal.id)
        return result

    def _load(self, entity_type: EntityType, entity_id: int) -> Entity:
        entity = self.store.load_entity(entity_type, entity_id)
        if entity is None:
            raise EntityNotFoundException(entity_type.value, entity_id)
        return entity

    def _entity_lock(self, entity_type: EntityType, entity_id: int) -> Lock:
        key = (entity_type, entity_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            return lock


def _duplicate_code(code: str, existing_id: Optional[int]) -> PreconditionNotMet:
    return PreconditionNotMet(
        Precondition.UNIQUE_CODE,
        f"Ya existe un registro con el código {code}",
        context={"existing_id": existing_id},
    )


def _require_goal(objective: Objective, goal_id: int) -> Goal:
    goal = objective.get_goal(goal_id)
    if goal is None:
        raise EntityNotFoundException("META", goal_id)
    return goal


def _replace_goal(objective: Objective, goal_id: int, goal_data: Dict[str, Any]) -> List[Any]:
    # La meta reemplazada va como dict para que el modelo la valide de nuevo
    return [goal_data if goal.id == goal_id else goal for goal in objective.goals]


def _next_id(items: List[Union[Goal, Indicator, Activity, BudgetAllocation]]) -> int:
    return max((item.id or 0 for item in items), default=0) + 1
