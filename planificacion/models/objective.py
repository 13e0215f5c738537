from decimal import Decimal
from enum import Enum
from typing import ClassVar, FrozenSet, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from planificacion.models.base import PlanningEntity


class ObjectiveState(str, Enum):
    """Estados del objetivo estratégico"""

    BORRADOR = "BORRADOR"
    EN_VALIDACION = "EN_VALIDACION"
    APROBADO = "APROBADO"
    RECHAZADO = "RECHAZADO"


class Priority(str, Enum):
    ALTA = "ALTA"
    MEDIA = "MEDIA"
    BAJA = "BAJA"


class GoalProgress(str, Enum):
    """Estado de avance de una meta calculado a partir de su valor actual."""

    BORRADOR = "BORRADOR"
    ACTIVA = "ACTIVA"
    COMPLETADA = "COMPLETADA"


class IndicatorKind(str, Enum):
    CUANTITATIVO = "CUANTITATIVO"
    CUALITATIVO = "CUALITATIVO"


class Indicator(BaseModel):
    """Indicador de medición asociado a una meta."""

    id: Optional[int] = None
    code: str = Field(..., min_length=1, max_length=50, description="Código del indicador")
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    formula: Optional[str] = None
    kind: IndicatorKind = IndicatorKind.CUANTITATIVO
    unit: Optional[str] = None
    frequency: str = Field("TRIMESTRAL", description="Frecuencia de medición")
    responsible_id: Optional[Union[int, str]] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class Goal(BaseModel):
    """Meta de un objetivo."""

    id: Optional[int] = None
    code: Optional[str] = Field(None, max_length=50)
    description: str = Field(..., min_length=1, description="Descripción de la meta")
    target_value: Decimal = Field(..., ge=0, description="Valor meta")
    current_value: Decimal = Field(Decimal("0"), ge=0, description="Valor actual")
    unit: str = Field(..., min_length=1, description="Unidad de medida")
    periodicity: str = Field(..., min_length=1, description="Periodicidad de medición")
    indicators: List[Indicator] = Field(default_factory=list)

    @field_validator("indicators")
    @classmethod
    def unique_indicator_codes(cls, v: List[Indicator]) -> List[Indicator]:
        codes = [indicator.code for indicator in v]
        if len(codes) != len(set(codes)):
            raise ValueError("Ya existe un indicador con ese código en la meta")
        return v

    @property
    def progress_percentage(self) -> float:
        if self.target_value == 0:
            return 0.0
        ratio = self.current_value / self.target_value * 100
        return round(float(min(ratio, Decimal("100"))), 2)

    @property
    def progress(self) -> GoalProgress:
        if self.current_value >= self.target_value:
            return GoalProgress.COMPLETADA
        if self.current_value > 0:
            return GoalProgress.ACTIVA
        return GoalProgress.BORRADOR


class Objective(PlanningEntity):
    """Objetivo estratégico institucional"""

    CORE_FIELDS: ClassVar[FrozenSet[str]] = frozenset(
        {
            "code",
            "name",
            "description",
            "responsible_area",
            "priority",
            "goals",
            "pnd_alignment",
            "ods_alignment",
        }
    )

    code: str = Field(..., min_length=2, max_length=50, description="Código único del objetivo")
    name: str = Field(..., min_length=3, max_length=200, description="Nombre del objetivo")
    description: Optional[str] = Field(None, max_length=1000)
    responsible_area: Optional[str] = Field(None, max_length=200, description="Área responsable")
    priority: Priority = Priority.MEDIA
    state: ObjectiveState = ObjectiveState.BORRADOR
    goals: List[Goal] = Field(default_factory=list)

    # Referencias externas de alineación (PND / ODS)
    pnd_alignment: Optional[str] = None
    ods_alignment: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def goals_count(self) -> int:
        return len(self.goals)

    def get_goal(self, goal_id: int) -> Optional[Goal]:
        return next((goal for goal in self.goals if goal.id == goal_id), None)

    def get_progress(self) -> float:
        """Avance promedio de las metas del objetivo"""
        if not self.goals:
            return 0.0
        return round(sum(goal.progress_percentage for goal in self.goals) / len(self.goals), 2)

    def __repr__(self) -> str:
        return f"<Objective(id={self.id}, code='{self.code}', state='{self.state.value}')>"
