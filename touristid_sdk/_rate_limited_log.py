"""
Thread-safe rate-limited logging.

Polling loops and per-mint fallbacks repeat the same warning many times;
this keeps one line per message per interval.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

_DEFAULT_INTERVAL = 60

_log_caches = {}
_log_caches_lock = threading.RLock()


def _cache_for(interval: int) -> TTLCache:
    with _log_caches_lock:
        cache = _log_caches.get(interval)
        if cache is None:
            cache = TTLCache(maxsize=256, ttl=interval)
            _log_caches[interval] = cache
        return cache


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = _DEFAULT_INTERVAL,
    logger_instance: Optional[logging.Logger] = None,
    key: Optional[str] = None
) -> bool:
    """
    Log a message at most once per interval, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        interval: Minimum interval between identical logs in seconds
        logger_instance: Logger to use (defaults to module logger)
        key: Deduplication key (defaults to level + message)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    cache_key = key or f"{level}:{message}"
    cache = _cache_for(interval)

    with _log_caches_lock:
        if cache_key in cache:
            return False
        log_method(message)
        cache[cache_key] = True
        return True


def reset_rate_limits() -> None:
    """Forget every suppressed message (used by tests)."""
    with _log_caches_lock:
        for cache in _log_caches.values():
            cache.clear()
