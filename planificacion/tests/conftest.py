from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count

import pytest

from planificacion.crud.store import InMemoryPlanningStore
from planificacion.models.objective import Goal, Objective, ObjectiveState
from planificacion.models.project import Activity, Project, ProjectState
from planificacion.schemas.principal import Principal, Role
from planificacion.services.workflow_service import PlanningWorkflowService


class FakeClock:
    """Reloj determinista: cada llamada avanza un segundo."""

    def __init__(self, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self._ticks = count()
        self.start = start

    def __call__(self):
        return self.start + timedelta(seconds=next(self._ticks))


def make_principal(*roles, id="user-1"):
    return Principal(id=id, roles=set(roles))


def make_goal(**overrides):
    data = {
        "description": "Reducir la brecha de cobertura",
        "target_value": Decimal("100"),
        "unit": "porcentaje",
        "periodicity": "ANUAL",
    }
    data.update(overrides)
    return Goal(**data)


def make_objective(goals=0, state=ObjectiveState.BORRADOR, **overrides):
    data = {
        "id": 1,
        "code": "OE-01",
        "name": "Fortalecer la gestión institucional",
        "state": state,
        "goals": [make_goal(id=i + 1) for i in range(goals)],
    }
    data.update(overrides)
    return Objective(**data)


def make_activity(**overrides):
    data = {"code": "ACT-01", "name": "Levantamiento de información", "budget": Decimal("500")}
    data.update(overrides)
    return Activity(**data)


def make_project(budget="1000", activities=1, state=ProjectState.BORRADOR, **overrides):
    data = {
        "id": 1,
        "code": "PI-01",
        "name": "Modernización del sistema de riego",
        "total_budget": Decimal(budget),
        "state": state,
        "activities": [make_activity(id=i + 1, code=f"ACT-{i + 1:02d}") for i in range(activities)],
    }
    data.update(overrides)
    return Project(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin():
    return make_principal(Role.ADMIN, id="admin")


@pytest.fixture
def planner():
    return make_principal(Role.PLANIF, id="planificador")


@pytest.fixture
def validator():
    return make_principal(Role.VALID, id="validador")


@pytest.fixture
def reviewer():
    return make_principal(Role.REVISOR, id="revisor")


@pytest.fixture
def consultant():
    return make_principal(Role.CONSUL, id="consulta")


@pytest.fixture
def store():
    return InMemoryPlanningStore()


@pytest.fixture
def service(store, clock):
    return PlanningWorkflowService(store, clock=clock)
