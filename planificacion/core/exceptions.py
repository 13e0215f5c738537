from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkflowError(str, Enum):
    """Tipos de error que el núcleo devuelve como resultado, nunca como excepción."""

    PERMISSION_DENIED = "PermissionDenied"
    INVALID_TRANSITION = "InvalidTransition"
    PRECONDITION_NOT_MET = "PreconditionNotMet"
    JUSTIFICATION_REQUIRED = "JustificationRequired"
    NOT_EDITABLE_IN_CURRENT_STATE = "NotEditableInCurrentState"
    CONFLICT = "Conflict"


class Precondition(str, Enum):
    """Precondiciones de completitud que la interfaz puede mostrar con precisión."""

    AT_LEAST_ONE_GOAL = "requires at least one goal"
    POSITIVE_BUDGET = "requires budget > 0"
    AT_LEAST_ONE_ACTIVITY = "requires at least one activity"
    ALLOCATIONS_WITHIN_BUDGET = "budget allocations exceed total budget"
    CORE_FIELDS_ONLY = "only core fields can be edited"
    INVALID_FIELD_VALUE = "invalid field value"
    UNIQUE_CODE = "code already registered"


class WorkflowFailure(BaseModel):
    """Resultado fallido de una operación del núcleo."""

    model_config = ConfigDict(frozen=True)

    error: WorkflowError
    detail: str
    precondition: Optional[Precondition] = None
    context: Dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        if self.precondition is not None:
            return f"{self.error.value}({self.precondition.value}): {self.detail}"
        return f"{self.error.value}: {self.detail}"


class PermissionDenied(WorkflowFailure):
    """Permisos insuficientes."""

    def __init__(self, detail: str = "Permisos insuficientes", **data: Any):
        super().__init__(error=WorkflowError.PERMISSION_DENIED, detail=detail, **data)


class InvalidTransition(WorkflowFailure):
    """Acción no definida para el estado actual."""

    def __init__(self, detail: str = "Transición no válida para el estado actual", **data: Any):
        super().__init__(error=WorkflowError.INVALID_TRANSITION, detail=detail, **data)


class PreconditionNotMet(WorkflowFailure):
    """Precondición de completitud no cumplida."""

    def __init__(self, precondition: Precondition, detail: Optional[str] = None, **data: Any):
        super().__init__(
            error=WorkflowError.PRECONDITION_NOT_MET,
            detail=detail or f"Precondición no cumplida: {precondition.value}",
            precondition=precondition,
            **data,
        )

    @classmethod
    def from_validation_error(cls, exc: Any) -> "PreconditionNotMet":
        """Traduce un ValidationError de pydantic a una falla con los campos afectados."""
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        return cls(
            Precondition.INVALID_FIELD_VALUE,
            f"Valores no válidos en: {', '.join(fields)}",
            context={"fields": fields},
        )


class JustificationRequired(WorkflowFailure):
    """Rechazo sin justificación."""

    def __init__(self, detail: str = "La justificación es requerida para rechazar", **data: Any):
        super().__init__(error=WorkflowError.JUSTIFICATION_REQUIRED, detail=detail, **data)


class NotEditableInCurrentState(WorkflowFailure):
    """Edición fuera del estado borrador."""

    def __init__(self, detail: str = "La entidad no es editable en su estado actual", **data: Any):
        super().__init__(error=WorkflowError.NOT_EDITABLE_IN_CURRENT_STATE, detail=detail, **data)


class Conflict(WorkflowFailure):
    """La entidad cambió concurrentemente desde que fue cargada."""

    def __init__(self, detail: str = "La entidad fue modificada por otra operación", **data: Any):
        super().__init__(error=WorkflowError.CONFLICT, detail=detail, **data)


class EntityNotFoundException(LookupError):
    """Entidad inexistente en el colaborador de persistencia."""

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} con ID {entity_id} no encontrado")
