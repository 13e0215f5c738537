import logging

import pytest
from pydantic import ValidationError

from planificacion.core.config import Settings, get_settings
from planificacion.core.logging import configure_logging
from planificacion.models.objective import ObjectiveState
from planificacion.schemas.workflow import TransitionPayload
from planificacion.tests.conftest import make_objective
from planificacion.workflow.objective import ObjectiveWorkflow


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings()
    assert settings.PROJECT_NAME == "Sistema de Planificación Institucional"
    assert settings.JUSTIFICATION_MIN_LENGTH >= 1
    assert settings.DEFAULT_PAGE_LIMIT == 100


def test_log_level_is_normalized():
    assert Settings(LOG_LEVEL=" debug ").LOG_LEVEL == "DEBUG"


def test_justification_length_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(JUSTIFICATION_MIN_LENGTH=0)


def test_settings_read_from_environment(monkeypatch, fresh_settings):
    monkeypatch.setenv("JUSTIFICATION_MIN_LENGTH", "10")
    assert get_settings().JUSTIFICATION_MIN_LENGTH == 10
    assert get_settings() is get_settings()


def test_justification_min_length_applies_to_reject(monkeypatch, fresh_settings, validator):
    monkeypatch.setenv("JUSTIFICATION_MIN_LENGTH", "10")
    workflow = ObjectiveWorkflow()
    objective = make_objective(goals=1, state=ObjectiveState.EN_VALIDACION)
    short = workflow.attempt_transition(objective, "reject", validator, TransitionPayload(justification=" corto "))
    assert not short.ok
    detailed = workflow.attempt_transition(
        objective, "reject", validator, TransitionPayload(justification="Falta la línea base")
    )
    assert detailed.ok


def test_configure_logging_sets_package_level():
    configure_logging(Settings(LOG_LEVEL="warning"))
    assert logging.getLogger("planificacion").level == logging.WARNING
    configure_logging(Settings(LOG_LEVEL="INFO"))
    assert logging.getLogger("planificacion").level == logging.INFO
