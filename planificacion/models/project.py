from decimal import Decimal
from enum import Enum
from typing import ClassVar, FrozenSet, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from planificacion.models.base import PlanningEntity


class ProjectState(str, Enum):
    """Estados del proyecto de inversión"""

    BORRADOR = "Borrador"
    ENVIADO = "Enviado"
    APROBADO = "Aprobado"
    RECHAZADO = "Rechazado"


class Activity(BaseModel):
    """Actividad del POA de un proyecto."""

    id: Optional[int] = None
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    budget: Decimal = Field(Decimal("0"), ge=0)


class BudgetAllocation(BaseModel):
    """Asignación presupuestaria anual de un proyecto."""

    id: Optional[int] = None
    year: int = Field(..., ge=1900, le=2200, description="Año fiscal")
    amount: Decimal = Field(..., gt=0)
    kind: str = Field("INVERSION", description="Tipo de asignación")


class Project(PlanningEntity):
    """Proyecto de inversión"""

    CORE_FIELDS: ClassVar[FrozenSet[str]] = frozenset(
        {"code", "name", "description", "total_budget", "activities", "budget_allocations"}
    )

    code: str = Field(..., min_length=2, max_length=50, description="Código único del proyecto")
    name: str = Field(..., min_length=3, max_length=200, description="Nombre del proyecto")
    description: Optional[str] = Field(None, max_length=1000)
    total_budget: Decimal = Field(Decimal("0"), ge=0, description="Presupuesto total")
    state: ProjectState = ProjectState.BORRADOR
    activities: List[Activity] = Field(default_factory=list)
    budget_allocations: List[BudgetAllocation] = Field(default_factory=list)

    responsible_id: Optional[Union[int, str]] = None
    supervisor_id: Optional[Union[int, str]] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def allocated_budget(self) -> Decimal:
        return sum((allocation.amount for allocation in self.budget_allocations), Decimal("0"))

    @property
    def activities_count(self) -> int:
        return len(self.activities)

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, code='{self.code}', state='{self.state.value}')>"
