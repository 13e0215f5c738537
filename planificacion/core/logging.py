import logging
from typing import Optional

from planificacion.core.config import Settings, get_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configura el logger raíz según la configuración de la aplicación.

    El núcleo nunca configura logging al importarse; la aplicación anfitriona
    decide cuándo llamar a esta función.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
    logging.getLogger("planificacion").setLevel(settings.LOG_LEVEL)
