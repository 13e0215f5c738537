from __future__ import annotations

from contextlib import contextmanager
from threading import RLock
from typing import Dict, Iterator, Optional, Protocol, Tuple, Union

from planificacion.crud.base import CRUDBase
from planificacion.crud.decision import DecisionHistory
from planificacion.models.decision import DecisionRecord, EntityType
from planificacion.models.objective import Objective
from planificacion.models.project import Project

Entity = Union[Objective, Project]


class PlanningStore(Protocol):
    """Contrato del colaborador de persistencia."""

    def load_entity(self, entity_type: EntityType, entity_id: int) -> Optional[Entity]: ...

    def find_by_code(self, entity_type: EntityType, code: str) -> Optional[Entity]: ...

    def add_entity(self, entity_type: EntityType, entity: Entity) -> Entity: ...

    def save_entity(self, entity: Entity) -> Optional[Entity]: ...

    def append_decision(self, record: DecisionRecord) -> DecisionRecord: ...

    def history(self, entity_type: EntityType, entity_id: int) -> Tuple[DecisionRecord, ...]: ...

    def transaction(self): ...


class InMemoryPlanningStore:
    """Persistencia en memoria de objetivos, proyectos y decisiones.

    ``transaction()`` agrupa guardado y registro de decisión: si algo falla
    dentro del bloque, se restaura el estado previo y se propaga el error.
    """

    def __init__(self) -> None:
        self.objectives: CRUDBase[Objective] = CRUDBase(Objective)
        self.projects: CRUDBase[Project] = CRUDBase(Project)
        self.decisions = DecisionHistory()
        self._lock = RLock()

    def crud_for(self, entity_type: EntityType) -> CRUDBase:
        if entity_type == EntityType.OBJETIVO:
            return self.objectives
        return self.projects

    def load_entity(self, entity_type: EntityType, entity_id: int) -> Optional[Entity]:
        return self.crud_for(entity_type).get(id=entity_id)

    def find_by_code(self, entity_type: EntityType, code: str) -> Optional[Entity]:
        return self.crud_for(entity_type).get_by_code(code)

    def add_entity(self, entity_type: EntityType, entity: Entity) -> Entity:
        return self.crud_for(entity_type).create(obj_in=entity)

    def save_entity(self, entity: Entity) -> Optional[Entity]:
        entity_type = EntityType.OBJETIVO if isinstance(entity, Objective) else EntityType.PROYECTO
        return self.crud_for(entity_type).save(entity)

    def append_decision(self, record: DecisionRecord) -> DecisionRecord:
        return self.decisions.append(record)

    def history(self, entity_type: EntityType, entity_id: int) -> Tuple[DecisionRecord, ...]:
        return self.decisions.for_entity(entity_type, entity_id)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryPlanningStore"]:
        with self._lock:
            saved: Dict[str, object] = {
                "objectives": self.objectives.snapshot(),
                "projects": self.projects.snapshot(),
                "decisions": self.decisions.snapshot(),
            }
            try:
                yield self
            except Exception:
                self.objectives.restore(saved["objectives"])
                self.projects.restore(saved["projects"])
                self.decisions.restore(saved["decisions"])
                raise
