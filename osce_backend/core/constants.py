"""
Constantes y configuración de entorno del backend de exámenes OSCE.

Todas las variables se leen con os.getenv para poder sobreescribirlas
desde el entorno de despliegue (docker, systemd, cron, etc.).
"""
import os
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timestamp timezone-aware en UTC"""
    return datetime.now(timezone.utc)


# Entorno
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Autenticación
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(24 * 60)))
CRON_SECRET = os.getenv("CRON_SECRET", "dev-cron-secret")
DEFAULT_EVALUATOR_PASSWORD = os.getenv("DEFAULT_EVALUATOR_PASSWORD", "12345")

# Las fechas de aplicación se guardan como hora local de esta zona
EXAM_TIMEZONE = os.getenv("EXAM_TIMEZONE", "America/Argentina/Buenos_Aires")

# Cache
DEFAULT_CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "300"))

# CORS
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Encabezados para lecturas que siempre deben reflejar la última escritura
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Formato de fecha usado en los títulos de exámenes duplicados
DUPLICATE_TITLE_DATE_FORMAT = "%d/%m/%Y"
