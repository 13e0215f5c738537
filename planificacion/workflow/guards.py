"""Guardas reutilizables para las transiciones de flujo.

Una guarda es una función pura ``(entity, payload) -> WorkflowFailure | None``.
La guarda de autorización no vive aquí: el motor la evalúa siempre primero a
partir de la capacidad declarada en la transición.
"""

from decimal import Decimal
from typing import Any, Callable, FrozenSet, Optional

from planificacion.core.config import get_settings
from planificacion.core.exceptions import (
    JustificationRequired,
    Precondition,
    PreconditionNotMet,
    WorkflowFailure,
)
from planificacion.schemas.workflow import TransitionPayload

Guard = Callable[[Any, TransitionPayload], Optional[WorkflowFailure]]


def has_at_least_one(attribute: str, precondition: Precondition, detail: str) -> Guard:
    def guard(entity: Any, payload: TransitionPayload) -> Optional[WorkflowFailure]:
        if len(getattr(entity, attribute) or []) >= 1:
            return None
        return PreconditionNotMet(precondition, detail)

    guard.__name__ = f"has_at_least_one_{attribute}"
    return guard


def is_positive(attribute: str, precondition: Precondition, detail: str) -> Guard:
    def guard(entity: Any, payload: TransitionPayload) -> Optional[WorkflowFailure]:
        value = getattr(entity, attribute)
        if value is not None and Decimal(value) > 0:
            return None
        return PreconditionNotMet(precondition, detail)

    guard.__name__ = f"is_positive_{attribute}"
    return guard


def allocations_within_budget(entity: Any, payload: TransitionPayload) -> Optional[WorkflowFailure]:
    if entity.allocated_budget <= entity.total_budget:
        return None
    return PreconditionNotMet(
        Precondition.ALLOCATIONS_WITHIN_BUDGET,
        f"Las asignaciones ({entity.allocated_budget}) superan el presupuesto total ({entity.total_budget})",
    )


def require_justification(entity: Any, payload: TransitionPayload) -> Optional[WorkflowFailure]:
    text = (payload.justification or "").strip()
    if len(text) >= get_settings().JUSTIFICATION_MIN_LENGTH:
        return None
    return JustificationRequired()


def core_fields_only(editable_fields: FrozenSet[str]) -> Guard:
    def guard(entity: Any, payload: TransitionPayload) -> Optional[WorkflowFailure]:
        foreign = set(payload.changes) - editable_fields
        if not foreign:
            return None
        return PreconditionNotMet(
            Precondition.CORE_FIELDS_ONLY,
            f"Campos no editables: {', '.join(sorted(foreign))}",
            context={"fields": sorted(foreign)},
        )

    guard.__name__ = "core_fields_only"
    return guard
