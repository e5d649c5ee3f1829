"""
Configuración de logging de la aplicación.

En producción los mensajes DEBUG se suprimen; los errores siempre se emiten.
"""
import logging
import sys

from .constants import IS_PRODUCTION, LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_configured = False


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configura el root logger una sola vez (idempotente)."""
    global _configured
    if _configured:
        return

    resolved = getattr(logging, level.upper(), logging.INFO)
    if IS_PRODUCTION and resolved < logging.INFO:
        resolved = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(resolved)
    root.addHandler(handler)

    # SQLAlchemy es muy verboso en INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
    logging.getLogger(__name__).info(f"Logging configured: level={logging.getLevelName(resolved)}")
