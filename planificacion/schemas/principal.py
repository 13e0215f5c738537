from enum import Enum
from typing import FrozenSet, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    """Roles del sistema."""

    ADMIN = "ADMIN"
    PLANIF = "PLANIF"
    REVISOR = "REVISOR"
    VALID = "VALID"
    AUDITOR = "AUDITOR"
    CONSUL = "CONSUL"


class Principal(BaseModel):
    """Actor autenticado entregado por el colaborador de autenticación."""

    model_config = ConfigDict(frozen=True)

    id: Union[int, str] = Field(..., description="Identificador opaco del usuario")
    roles: FrozenSet[Role] = Field(default_factory=frozenset, description="Roles asignados")

    @field_validator("roles", mode="before")
    @classmethod
    def normalize_roles(cls, v):
        if isinstance(v, (str, Role)):
            v = [v]
        return frozenset(
            role if isinstance(role, Role) else str(role).strip().upper() for role in v or []
        )

    def has_role(self, role: Role) -> bool:
        return role in self.roles
