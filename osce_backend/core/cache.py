"""
Ephemeral Cache - memoización en memoria con TTL

Cachea el resultado de una función de lectura (listados de exámenes,
hospitales, evaluadores, grupos) durante un tiempo acotado.

- La clave es un string arbitrario ("exams:all", "hospitals:all", ...)
- Los valores None no se guardan
- Si la función falla y existe un valor previo (aunque esté expirado),
  se devuelve ese valor como fallback en lugar de propagar el error
- Estado de un solo proceso: no se comparte entre workers
"""
import re
import time
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Pattern, TypeVar, Union

from .constants import DEFAULT_CACHE_TTL_SECONDS
from .metrics import record_cache_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    value: Any
    cached_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.cached_at < self.ttl


class EphemeralCache:
    """
    Cache TTL keyed by string.

    Thread-safe: el mapa se protege con un lock, pero la función de
    obtención se ejecuta fuera del lock para no serializar lecturas lentas.
    """

    def __init__(self, default_ttl: float = DEFAULT_CACHE_TTL_SECONDS, name: str = "default"):
        """
        Args:
            default_ttl: Tiempo de vida por defecto en segundos
            name: Nombre usado en logs y métricas
        """
        self.default_ttl = default_ttl
        self.name = name
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._fallbacks = 0

    def get(
        self,
        key: str,
        fetch_fn: Callable[[], T],
        force_refresh: bool = False,
        ttl: Optional[float] = None,
    ) -> T:
        """
        Devuelve el valor cacheado para `key` o lo obtiene con `fetch_fn`.

        Args:
            key: Clave de cache
            fetch_fn: Función sin argumentos que obtiene el valor fresco
            force_refresh: Ignora el valor cacheado aunque siga vigente
            ttl: Tiempo de vida en segundos (default: self.default_ttl)

        Returns:
            El valor cacheado o el recién obtenido

        Raises:
            Cualquier excepción de fetch_fn si no hay valor previo para fallback
        """
        ttl = self.default_ttl if ttl is None else ttl
        now = time.time()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not force_refresh and entry.is_fresh(now):
                self._hits += 1
                logger.debug(f"Cache HIT for key: {key}")
                record_cache_operation(self.name, hit=True)
                return entry.value
            self._misses += 1

        logger.debug(f"Cache MISS for key: {key}, fetching fresh value")
        record_cache_operation(self.name, hit=False)

        try:
            value = fetch_fn()
        except Exception:
            if entry is not None:
                with self._lock:
                    self._fallbacks += 1
                logger.warning(
                    f"Fetch failed for cache key {key}; serving stale value as fallback",
                    exc_info=True,
                )
                return entry.value
            raise

        if value is not None:
            with self._lock:
                self._entries[key] = CacheEntry(value=value, cached_at=time.time(), ttl=ttl)

        return value

    def invalidate(self, key: str) -> None:
        """Elimina una entrada."""
        with self._lock:
            self._entries.pop(key, None)
        logger.debug(f"Cache invalidated key: {key}")

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """
        Elimina todas las entradas cuya clave coincide con el patrón.

        Returns:
            Número de entradas eliminadas
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            matching = [key for key in self._entries if regex.search(key)]
            for key in matching:
                del self._entries[key]

        if matching:
            logger.debug(f"Cache invalidated {len(matching)} keys matching {regex.pattern!r}")
        return len(matching)

    def clear(self) -> None:
        """Limpia todo el cache."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._fallbacks = 0
        logger.info(f"Cache '{self.name}' cleared")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            return {
                "name": self.name,
                "size": len(self._entries),
                "keys": sorted(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "fallbacks": self._fallbacks,
                "hit_rate_percent": round(hit_rate, 2),
                "default_ttl_seconds": self.default_ttl,
            }


# Instancia global (singleton por proceso)
_global_cache: Optional[EphemeralCache] = None
_cache_lock = threading.Lock()


def get_cache() -> EphemeralCache:
    """
    Obtiene la instancia global del cache.

    Double-checked locking para que solo un thread la inicialice.
    """
    global _global_cache

    if _global_cache is None:
        with _cache_lock:
            if _global_cache is None:
                _global_cache = EphemeralCache(name="api")

    return _global_cache
