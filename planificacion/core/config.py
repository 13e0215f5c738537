from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Aplicación
    PROJECT_NAME: str = "Sistema de Planificación Institucional"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    # Reglas de flujo de aprobación
    JUSTIFICATION_MIN_LENGTH: int = 1  # caracteres no blancos exigidos al rechazar

    # Almacenamiento en memoria
    DEFAULT_PAGE_LIMIT: int = 100

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().upper()
        raise ValueError(v)

    @field_validator("JUSTIFICATION_MIN_LENGTH")
    @classmethod
    def validate_justification_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError("La justificación debe exigir al menos un carácter")
        return v

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
