"""Motor genérico de flujos de aprobación.

- Sin estado ni E/S: recibe una entidad y devuelve una entidad nueva o una falla.
- Las guardas se evalúan en orden fijo: autorización, completitud, payload.
- Las acciones de decisión (aprobar/rechazar) emiten exactamente un DecisionRecord.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Generic, Iterable, List, Optional, Tuple, TypeVar, Union

from pydantic import ValidationError

from planificacion.core.exceptions import (
    InvalidTransition,
    NotEditableInCurrentState,
    PreconditionNotMet,
    WorkflowFailure,
)
from planificacion.core.permissions import Capability, Module, PermissionResolver, permission_resolver
from planificacion.models.base import PlanningEntity, utcnow
from planificacion.models.decision import DecisionOutcome, DecisionRecord, EntityType
from planificacion.schemas.principal import Principal
from planificacion.schemas.workflow import TransitionPayload, WorkflowResult
from planificacion.workflow.guards import Guard

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=PlanningEntity)
StateT = TypeVar("StateT", bound=Enum)


@dataclass(frozen=True)
class Transition(Generic[StateT]):
    """(origen, acción, destino) con sus guardas.

    ``locked`` marca una acción conocida que el estado de origen no admite
    (edición fuera de borrador): tras la autorización devuelve
    NotEditableInCurrentState y nunca cambia el estado.
    """

    source: StateT
    action: str
    target: StateT
    capability: Capability
    preconditions: Tuple[Guard, ...] = ()
    payload_guards: Tuple[Guard, ...] = ()
    decision: Optional[DecisionOutcome] = None
    applies_changes: bool = False
    locked: bool = False


class EntityWorkflow(Generic[EntityT, StateT]):
    """Máquina de estados genérica sobre entidades de planificación."""

    entity_type: EntityType
    module: Module
    initial_state: StateT

    def __init__(
        self,
        transitions: Iterable[Transition[StateT]],
        *,
        resolver: Optional[PermissionResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.resolver = resolver or permission_resolver
        self.clock = clock or utcnow
        self._transitions: Dict[Tuple[StateT, str], Transition[StateT]] = {}
        for transition in transitions:
            key = (transition.source, transition.action)
            if key in self._transitions:
                raise ValueError(f"Transición duplicada: {transition.source.value}/{transition.action}")
            self._transitions[key] = transition

    # ----------------- Consultas sobre la tabla de transiciones ----------------
    def transition_for(self, state: StateT, action: Union[str, Enum]) -> Optional[Transition[StateT]]:
        return self._transitions.get((state, _action_name(action)))

    def transitions_from(self, state: StateT) -> List[Transition[StateT]]:
        return [t for (source, _), t in self._transitions.items() if source == state]

    def is_terminal(self, state: StateT) -> bool:
        return all(t.locked or t.target == state for t in self.transitions_from(state))

    @property
    def states(self) -> FrozenSet[StateT]:
        return frozenset(type(self.initial_state))

    # ----------------- Ejecución -----------------------------------------------
    def attempt_transition(
        self,
        entity: EntityT,
        action: Union[str, Enum],
        principal: Principal,
        payload: Optional[TransitionPayload] = None,
    ) -> WorkflowResult[EntityT]:
        payload = payload or TransitionPayload()
        action_name = _action_name(action)

        transition = self.transition_for(entity.state, action_name)
        failure = self._inactive_or_undefined(entity, action_name, transition)
        if failure is None:
            failure = self._evaluate(transition, entity, principal, payload)
        if failure is None:
            changes = dict(payload.changes) if transition.applies_changes else {}
            applied = self.apply_changes(entity, principal, state=transition.target, **changes)
            failure = applied.failure
        if failure is not None:
            logger.info(
                "%s %s: acción '%s' rechazada para %s en %s: %s",
                self.entity_type.value,
                entity.id,
                action_name,
                principal.id,
                entity.state.value,
                failure,
            )
            return WorkflowResult.fail(failure)

        updated = applied.entity
        decision = None
        if transition.decision is not None:
            decision = DecisionRecord(
                entity_type=self.entity_type,
                entity_id=entity.id,
                outcome=transition.decision,
                justification=(payload.justification or "").strip() or None,
                decided_by=principal.id,
                decided_at=updated.updated_at,
                previous_state=entity.state.value,
                new_state=transition.target.value,
            )

        logger.info(
            "%s %s: %s -> %s por %s (%s)",
            self.entity_type.value,
            entity.id,
            entity.state.value,
            transition.target.value,
            principal.id,
            action_name,
        )
        return WorkflowResult.success(updated, decision)

    def apply_changes(self, entity: EntityT, principal: Principal, **changes: Any) -> WorkflowResult[EntityT]:
        """Copia validada con los cambios y la marca de auditoría.

        Un valor inválido se devuelve como PreconditionNotMet(INVALID_FIELD_VALUE)
        con las rutas de los campos en ``context["fields"]``.
        """
        try:
            updated = entity.with_changes(**changes, updated_at=self.clock(), updated_by=principal.id)
        except ValidationError as exc:
            return WorkflowResult.fail(PreconditionNotMet.from_validation_error(exc))
        return WorkflowResult.success(updated)

    def available_actions(self, entity: EntityT, principal: Principal) -> List[str]:
        """Acciones cuyas guardas de autorización y completitud pasan en el estado actual."""
        if not entity.is_active:
            return []
        return [
            transition.action
            for transition in self.transitions_from(entity.state)
            if not transition.locked
            and self._evaluate(transition, entity, principal, TransitionPayload(), include_payload=False) is None
        ]

    def _inactive_or_undefined(
        self, entity: EntityT, action_name: str, transition: Optional[Transition[StateT]]
    ) -> Optional[WorkflowFailure]:
        if not entity.is_active:
            return InvalidTransition(
                f"{self.entity_type.value} {entity.id} está inactivo",
                context={"action": action_name, "state": entity.state.value},
            )
        if transition is None:
            return InvalidTransition(
                f"Acción '{action_name}' no definida para el estado {entity.state.value}",
                context={"action": action_name, "state": entity.state.value},
            )
        if transition.decision is not None and entity.id is None:
            return InvalidTransition(
                f"{self.entity_type.value} sin identificador: no se puede registrar la decisión",
                context={"action": action_name, "state": entity.state.value},
            )
        return None

    def _evaluate(
        self,
        transition: Transition[StateT],
        entity: EntityT,
        principal: Principal,
        payload: TransitionPayload,
        include_payload: bool = True,
    ) -> Optional[WorkflowFailure]:
        denied = self.resolver.check(principal, self.module, transition.capability)
        if denied is not None:
            return denied

        if transition.locked:
            return NotEditableInCurrentState(
                f"{self.entity_type.value} no editable en estado {entity.state.value}",
                context={"state": entity.state.value},
            )

        for guard in transition.preconditions:
            failure = guard(entity, payload)
            if failure is not None:
                return failure

        if include_payload:
            for guard in transition.payload_guards:
                failure = guard(entity, payload)
                if failure is not None:
                    return failure
        return None


def _action_name(action: Union[str, Enum]) -> str:
    return str(getattr(action, "value", action)).strip()
