from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanningEntity(BaseModel):
    """Modelo base con campos comunes de las entidades con flujo de aprobación."""

    model_config = ConfigDict(validate_assignment=True)

    # Campos que solo pueden cambiar mientras la entidad está en borrador
    CORE_FIELDS: ClassVar[FrozenSet[str]] = frozenset()

    id: Optional[int] = None
    is_active: bool = True
    version: int = Field(0, ge=0, description="Versión para control de concurrencia optimista")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    created_by: Optional[Union[int, str]] = None  # ID del usuario que creó
    updated_by: Optional[Union[int, str]] = None  # ID del usuario que actualizó

    def to_dict(self) -> Dict[str, Any]:
        """Convierte el modelo a diccionario"""
        return self.model_dump()

    def with_changes(self, **changes: Any) -> "PlanningEntity":
        """Devuelve una copia validada con los cambios aplicados; no muta la instancia."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)

    def soft_delete(
        self, by: Optional[Union[int, str]] = None, at: Optional[datetime] = None
    ) -> "PlanningEntity":
        """Eliminación lógica"""
        return self.with_changes(is_active=False, updated_at=at or utcnow(), updated_by=by)
