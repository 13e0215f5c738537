from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from planificacion.core.exceptions import WorkflowFailure
from planificacion.models.decision import DecisionRecord, EntityType

T = TypeVar("T")


class TransitionPayload(BaseModel):
    """Datos opcionales que acompañan una acción de flujo."""

    model_config = ConfigDict(frozen=True)

    justification: Optional[str] = Field(None, description="Observaciones de la decisión")
    changes: Dict[str, Any] = Field(default_factory=dict, description="Campos a modificar")


class ActionRequest(BaseModel):
    """Solicitud de acción sobre una entidad."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    entity_id: int
    action: str = Field(..., min_length=1)
    payload: Optional[TransitionPayload] = None


class WorkflowResult(BaseModel, Generic[T]):
    """Resultado explícito de una operación del núcleo: entidad nueva o falla tipada."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    entity: Optional[T] = None
    decision: Optional[DecisionRecord] = None
    failure: Optional[WorkflowFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def state(self) -> Optional[Any]:
        return getattr(self.entity, "state", None) if self.ok else None

    @classmethod
    def success(cls, entity: T, decision: Optional[DecisionRecord] = None) -> "WorkflowResult[T]":
        return cls(entity=entity, decision=decision)

    @classmethod
    def fail(cls, failure: WorkflowFailure) -> "WorkflowResult[T]":
        return cls(failure=failure)
