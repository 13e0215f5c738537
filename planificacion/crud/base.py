from __future__ import annotations

from threading import RLock
from typing import Dict, Generic, List, Optional, Type, TypeVar

from planificacion.core.config import get_settings
from planificacion.models.base import PlanningEntity

ModelType = TypeVar("ModelType", bound=PlanningEntity)


class CRUDBase(Generic[ModelType]):
    """CRUD en memoria con control de concurrencia optimista por versión."""

    def __init__(self, model: Type[ModelType]) -> None:
        self.model = model
        self._rows: Dict[int, ModelType] = {}
        self._next_id = 1
        self._lock = RLock()

    def get(self, *, id: int) -> Optional[ModelType]:
        with self._lock:
            obj = self._rows.get(id)
            return obj.model_copy(deep=True) if obj is not None else None

    def get_multi(self, *, skip: int = 0, limit: Optional[int] = None) -> List[ModelType]:
        limit = limit if limit is not None else get_settings().DEFAULT_PAGE_LIMIT
        with self._lock:
            rows = [self._rows[key] for key in sorted(self._rows)]
        return [obj.model_copy(deep=True) for obj in rows[skip : skip + limit]]

    def get_by_code(self, code: str) -> Optional[ModelType]:
        """Obtiene una entidad por su código único."""
        normalized = code.strip().upper()
        with self._lock:
            for obj in self._rows.values():
                if getattr(obj, "code", None) == normalized:
                    return obj.model_copy(deep=True)
        return None

    def create(self, *, obj_in: ModelType) -> ModelType:
        with self._lock:
            db_obj = obj_in.with_changes(id=self._next_id, version=0)
            self._rows[db_obj.id] = db_obj
            self._next_id += 1
            return db_obj.model_copy(deep=True)

    def save(self, obj: ModelType) -> Optional[ModelType]:
        """Guarda si la versión coincide con la almacenada; ``None`` indica conflicto."""
        with self._lock:
            current = self._rows.get(obj.id)
            if current is None or current.version != obj.version:
                return None
            db_obj = obj.with_changes(version=obj.version + 1)
            self._rows[db_obj.id] = db_obj
            return db_obj.model_copy(deep=True)

    def snapshot(self) -> Dict[int, ModelType]:
        with self._lock:
            return dict(self._rows)

    def restore(self, rows: Dict[int, ModelType]) -> None:
        with self._lock:
            self._rows = dict(rows)

    def count(self) -> int:
        with self._lock:
            return len(self._rows)
