from threading import RLock
from typing import Dict, List, Tuple
from uuid import UUID

from planificacion.models.decision import DecisionOutcome, DecisionRecord, EntityType


class DecisionHistory:
    """Historial append-only de decisiones, ordenado por entidad."""

    def __init__(self) -> None:
        self._records: List[Tuple[int, DecisionRecord]] = []
        self._ids: Dict[UUID, int] = {}
        self._sequence = 0
        self._lock = RLock()

    def append(self, record: DecisionRecord) -> DecisionRecord:
        with self._lock:
            if record.id in self._ids:
                raise ValueError(f"Decisión {record.id} ya registrada")
            self._sequence += 1
            self._records.append((self._sequence, record))
            self._ids[record.id] = self._sequence
            return record

    def for_entity(self, entity_type: EntityType, entity_id: int) -> Tuple[DecisionRecord, ...]:
        with self._lock:
            matches = [
                (record.decided_at, sequence, record)
                for sequence, record in self._records
                if record.entity_type == entity_type and record.entity_id == entity_id
            ]
        return tuple(record for _, _, record in sorted(matches, key=lambda item: item[:2]))

    def count_by_outcome(self, entity_type: EntityType) -> Dict[str, int]:
        """Resumen de decisiones por resultado para un tipo de entidad."""
        with self._lock:
            counts = {outcome.value: 0 for outcome in DecisionOutcome}
            for _, record in self._records:
                if record.entity_type == entity_type:
                    counts[record.outcome.value] += 1
            return counts

    def snapshot(self) -> Tuple[List[Tuple[int, DecisionRecord]], Dict[UUID, int], int]:
        with self._lock:
            return list(self._records), dict(self._ids), self._sequence

    def restore(self, state: Tuple[List[Tuple[int, DecisionRecord]], Dict[UUID, int], int]) -> None:
        with self._lock:
            records, ids, sequence = state
            self._records, self._ids, self._sequence = list(records), dict(ids), sequence

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
