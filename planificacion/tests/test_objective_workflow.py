import pytest

from planificacion.core.exceptions import Precondition, WorkflowError
from planificacion.models.decision import DecisionOutcome, EntityType
from planificacion.models.objective import ObjectiveState, Priority
from planificacion.schemas.principal import Role
from planificacion.schemas.workflow import TransitionPayload
from planificacion.tests.conftest import make_goal, make_objective, make_principal
from planificacion.workflow.objective import ObjectiveAction, ObjectiveWorkflow


@pytest.fixture
def workflow(clock):
    return ObjectiveWorkflow(clock=clock)


def test_submit_without_goals_fails(workflow, planner):
    result = workflow.attempt_transition(make_objective(goals=0), "submitForValidation", planner)
    assert not result.ok
    assert result.failure.error == WorkflowError.PRECONDITION_NOT_MET
    assert result.failure.precondition == Precondition.AT_LEAST_ONE_GOAL
    assert result.failure.precondition.value == "requires at least one goal"


def test_submit_with_goal_moves_to_validation(workflow, planner):
    objective = make_objective(goals=1)
    result = workflow.attempt_transition(objective, ObjectiveAction.SUBMIT_FOR_VALIDATION, planner)
    assert result.ok
    assert result.state == ObjectiveState.EN_VALIDACION
    assert result.decision is None
    assert result.entity.updated_by == planner.id
    # la entidad de entrada no se modifica
    assert objective.state == ObjectiveState.BORRADOR


def test_reject_with_blank_justification(workflow, validator):
    objective = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    for justification in (None, "", "   \n\t"):
        result = workflow.attempt_transition(
            objective, "reject", validator, TransitionPayload(justification=justification)
        )
        assert result.failure.error == WorkflowError.JUSTIFICATION_REQUIRED


def test_reject_with_justification_emits_decision(workflow, validator):
    objective = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    result = workflow.attempt_transition(
        objective, "reject", validator, TransitionPayload(justification="Missing budget detail")
    )
    assert result.ok
    assert result.state == ObjectiveState.RECHAZADO
    decision = result.decision
    assert decision.outcome == DecisionOutcome.RECHAZADO
    assert decision.justification == "Missing budget detail"
    assert decision.entity_type == EntityType.OBJETIVO
    assert decision.entity_id == objective.id
    assert decision.decided_by == validator.id
    assert decision.previous_state == "EN_VALIDACION"
    assert decision.new_state == "RECHAZADO"


def test_approve_emits_decision_with_optional_observation(workflow, validator):
    objective = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    result = workflow.attempt_transition(objective, "approve", validator)
    assert result.state == ObjectiveState.APROBADO
    assert result.decision.outcome == DecisionOutcome.APROBADO
    assert result.decision.justification is None

    observed = workflow.attempt_transition(
        objective, "approve", validator, TransitionPayload(justification="  Conforme  ")
    )
    assert observed.decision.justification == "Conforme"


def test_consultant_cannot_write(workflow, consultant):
    cases = [
        (make_objective(goals=1), "submitForValidation"),
        (make_objective(goals=1, state=ObjectiveState.EN_VALIDACION), "approve"),
        (make_objective(goals=1, state=ObjectiveState.EN_VALIDACION), "reject"),
        (make_objective(goals=1, state=ObjectiveState.RECHAZADO), "edit"),
        (make_objective(goals=1), "edit"),
    ]
    for objective, action in cases:
        result = workflow.attempt_transition(
            objective, action, consultant, TransitionPayload(justification="x")
        )
        assert result.failure.error == WorkflowError.PERMISSION_DENIED, action


def test_permission_checked_before_preconditions(workflow, validator, consultant):
    objective = make_objective(goals=0)
    for principal in (validator, consultant, make_principal()):
        result = workflow.attempt_transition(objective, "submitForValidation", principal)
        assert result.failure.error == WorkflowError.PERMISSION_DENIED


def test_permission_checked_before_justification(workflow, planner):
    objective = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    result = workflow.attempt_transition(objective, "reject", planner, TransitionPayload(justification=""))
    assert result.failure.error == WorkflowError.PERMISSION_DENIED


def test_unknown_action_is_invalid_transition(workflow, admin):
    objective = make_objective(goals=1)
    for action in ("approve", "reject", "submitForReview", "archive"):
        result = workflow.attempt_transition(objective, action, admin)
        assert result.failure.error == WorkflowError.INVALID_TRANSITION, action


def test_second_reject_is_invalid_transition(workflow, validator):
    objective = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    payload = TransitionPayload(justification="Indicadores incompletos")
    first = workflow.attempt_transition(objective, "reject", validator, payload)
    second = workflow.attempt_transition(first.entity, "reject", validator, payload)
    assert second.failure.error == WorkflowError.INVALID_TRANSITION
    assert second.decision is None


def test_approved_is_terminal(workflow, admin):
    approved = make_objective(goals=1, state=ObjectiveState.APROBADO)
    assert workflow.is_terminal(ObjectiveState.APROBADO)
    for action in ObjectiveAction:
        result = workflow.attempt_transition(
            approved, action, admin, TransitionPayload(justification="x")
        )
        assert not result.ok
    assert workflow.available_actions(approved, admin) == []


def test_edit_in_locked_states(workflow, planner, consultant):
    for state in (ObjectiveState.EN_VALIDACION, ObjectiveState.APROBADO):
        objective = make_objective(goals=1, state=state)
        result = workflow.attempt_transition(
            objective, "edit", planner, TransitionPayload(changes={"name": "Nuevo nombre"})
        )
        assert result.failure.error == WorkflowError.NOT_EDITABLE_IN_CURRENT_STATE
        # la autorización se evalúa antes que el bloqueo
        denied = workflow.attempt_transition(objective, "edit", consultant)
        assert denied.failure.error == WorkflowError.PERMISSION_DENIED


def test_edit_rejected_returns_to_draft_with_changes(workflow, planner):
    objective = make_objective(goals=1, state=ObjectiveState.RECHAZADO)
    result = workflow.attempt_transition(
        objective,
        "edit",
        planner,
        TransitionPayload(changes={"name": "Objetivo corregido", "priority": "ALTA"}),
    )
    assert result.ok
    assert result.state == ObjectiveState.BORRADOR
    assert result.entity.name == "Objetivo corregido"
    assert result.entity.priority == Priority.ALTA
    assert result.decision is None


def test_edit_without_changes_still_returns_to_draft(workflow, planner):
    result = workflow.attempt_transition(make_objective(state=ObjectiveState.RECHAZADO), "edit", planner)
    assert result.state == ObjectiveState.BORRADOR


def test_edit_in_draft_is_self_transition(workflow, planner):
    objective = make_objective(goals=0)
    result = workflow.attempt_transition(
        objective, "edit", planner, TransitionPayload(changes={"goals": [make_goal(id=1)]})
    )
    assert result.state == ObjectiveState.BORRADOR
    assert result.entity.goals_count == 1


def test_edit_rejects_non_core_fields(workflow, planner):
    result = workflow.attempt_transition(
        make_objective(goals=1),
        "edit",
        planner,
        TransitionPayload(changes={"state": "APROBADO", "name": "Otro"}),
    )
    assert result.failure.error == WorkflowError.PRECONDITION_NOT_MET
    assert result.failure.precondition == Precondition.CORE_FIELDS_ONLY
    assert result.failure.context["fields"] == ["state"]


def test_edit_with_invalid_value_is_a_failure(workflow, planner):
    objective = make_objective()
    result = workflow.attempt_transition(
        objective, "edit", planner, TransitionPayload(changes={"name": "x", "description": "ok"})
    )
    assert result.failure.error == WorkflowError.PRECONDITION_NOT_MET
    assert result.failure.precondition == Precondition.INVALID_FIELD_VALUE
    assert result.failure.context["fields"] == ["name"]
    assert objective.name == "Fortalecer la gestión institucional"


def test_edit_with_invalid_nested_goal_is_a_failure(workflow, planner):
    bad_goal = make_goal().model_dump()
    bad_goal["target_value"] = -1
    result = workflow.attempt_transition(
        make_objective(goals=1), "edit", planner, TransitionPayload(changes={"goals": [bad_goal]})
    )
    assert result.failure.precondition == Precondition.INVALID_FIELD_VALUE
    assert result.failure.context["fields"] == ["goals.0.target_value"]


def test_decision_requires_persisted_entity(workflow, validator):
    unsaved = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION, id=None)
    for action, justification in (("approve", None), ("reject", "Sin línea base")):
        result = workflow.attempt_transition(
            unsaved, action, validator, TransitionPayload(justification=justification)
        )
        assert result.failure.error == WorkflowError.INVALID_TRANSITION
        assert result.decision is None


def test_non_decision_actions_accept_unsaved_entity(workflow, planner):
    result = workflow.attempt_transition(make_objective(goals=1, id=None), "submitForValidation", planner)
    assert result.state == ObjectiveState.EN_VALIDACION


def test_inactive_objective_cannot_transition(workflow, admin):
    objective = make_objective(goals=1, is_active=False)
    result = workflow.attempt_transition(objective, "submitForValidation", admin)
    assert result.failure.error == WorkflowError.INVALID_TRANSITION
    assert workflow.available_actions(objective, admin) == []


def test_available_actions(workflow, planner, validator, consultant):
    draft = make_objective(goals=1)
    assert sorted(workflow.available_actions(draft, planner)) == ["edit", "submitForValidation"]
    assert workflow.available_actions(make_objective(goals=0), planner) == ["edit"]
    in_validation = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    assert sorted(workflow.available_actions(in_validation, validator)) == ["approve", "reject"]
    assert workflow.available_actions(in_validation, consultant) == []


def test_rejected_can_always_return_to_draft(workflow):
    holders = [make_principal(role) for role in (Role.ADMIN, Role.PLANIF)]
    for principal in holders:
        rejected = make_objective(state=ObjectiveState.RECHAZADO)
        assert workflow.attempt_transition(rejected, "edit", principal).state == ObjectiveState.BORRADOR


def test_full_cycle_with_union_of_roles(workflow):
    principal = make_principal(Role.PLANIF, Role.VALID)
    objective = make_objective(goals=1)
    submitted = workflow.attempt_transition(objective, "submitForValidation", principal).entity
    rejected = workflow.attempt_transition(
        submitted, "reject", principal, TransitionPayload(justification="Ajustar metas")
    ).entity
    draft = workflow.attempt_transition(rejected, "edit", principal).entity
    resubmitted = workflow.attempt_transition(draft, "submitForValidation", principal).entity
    approved = workflow.attempt_transition(resubmitted, "approve", principal)
    assert approved.state == ObjectiveState.APROBADO


def test_goal_progress():
    goal = make_goal(target_value=200, current_value=50)
    assert goal.progress_percentage == 25.0
    assert goal.progress.value == "ACTIVA"
    assert make_goal(target_value=10, current_value=30).progress_percentage == 100.0
    assert make_goal(target_value=10, current_value=10).progress.value == "COMPLETADA"
    assert make_goal(target_value=0).progress_percentage == 0.0
    assert make_goal().progress.value == "BORRADOR"
    # meta 0 con valor 0 ya está cumplida
    assert make_goal(target_value=0).progress.value == "COMPLETADA"

    objective = make_objective()
    objective.goals = [
        make_goal(target_value=100, current_value=50),
        make_goal(target_value=10, current_value=10),
    ]
    assert objective.get_progress() == 75.0


def test_objective_code_is_normalized():
    assert make_objective(code="  oe-02 ").code == "OE-02"
