from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EntityType(str, Enum):
    OBJETIVO = "OBJETIVO"
    PROYECTO = "PROYECTO"


class DecisionOutcome(str, Enum):
    APROBADO = "APROBADO"
    RECHAZADO = "RECHAZADO"


class DecisionRecord(BaseModel):
    """Decisión inmutable de validación o revisión sobre una entidad."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    entity_type: EntityType
    entity_id: int
    outcome: DecisionOutcome
    justification: Optional[str] = None
    decided_by: Union[int, str]
    decided_at: datetime
    previous_state: str
    new_state: str

    @model_validator(mode="after")
    def require_justification_on_reject(self) -> "DecisionRecord":
        if self.outcome == DecisionOutcome.RECHAZADO and not (self.justification or "").strip():
            raise ValueError("Las observaciones son requeridas para un rechazo")
        return self
