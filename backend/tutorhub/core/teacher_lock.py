"""
Per-teacher mutex guarding booking reservation and payout allocation.

The lock never waits: callers learn immediately whether they own the
teacher's critical section and fail fast with a conflict otherwise.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
from typing import Dict, Iterator, Optional

from redis import Redis
import ulid

from tutorhub.core.config import settings
from tutorhub.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

_LOCAL_LOCKS: Dict[str, threading.Lock] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()

# Only delete the key when it still holds our token, so an expired lock
# re-acquired by another worker is never released by the previous owner.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def _lock_key(teacher_id: str, scope: str) -> str:
    return f"teacher:{teacher_id}:{scope}"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("teacher_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _local_lock(key: str) -> threading.Lock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[key] = lock
        return lock


def _acquire_local(key: str) -> bool:
    acquired = _local_lock(key).acquire(blocking=False)
    prometheus_metrics.record_teacher_lock("acquire", "success" if acquired else "blocked")
    return acquired


def _release_local(key: str) -> None:
    try:
        _local_lock(key).release()
        prometheus_metrics.record_teacher_lock("release", "success")
    except RuntimeError:
        prometheus_metrics.record_teacher_lock("release", "not_found")


def acquire_teacher_lock(teacher_id: str, scope: str, token: str, ttl_s: int) -> tuple[bool, str]:
    """
    Try to take the teacher mutex once.

    Returns ``(acquired, backend)`` where backend is the store that granted
    or refused the lock, so release goes back to the same store.
    """
    key = _lock_key(teacher_id, scope)
    if settings.teacher_lock_backend == "local":
        return _acquire_local(key), "local"

    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_teacher_lock("acquire", "redis_unavailable")
        logger.warning(
            "teacher_lock_falling_back_to_local",
            extra={"teacher_id": teacher_id, "scope": scope},
        )
        return _acquire_local(key), "local"
    try:
        acquired = bool(client.set(_namespaced_key(key), token, nx=True, ex=ttl_s))
    except Exception as exc:
        prometheus_metrics.record_teacher_lock("acquire", "error")
        logger.warning(
            "teacher_lock_redis_failed",
            extra={
                "teacher_id": teacher_id,
                "scope": scope,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return _acquire_local(key), "local"
    prometheus_metrics.record_teacher_lock("acquire", "success" if acquired else "blocked")
    return acquired, "redis"


def release_teacher_lock(teacher_id: str, scope: str, token: str, backend: str) -> None:
    key = _lock_key(teacher_id, scope)
    if backend == "local":
        _release_local(key)
        return

    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_teacher_lock("release", "redis_unavailable")
        return
    try:
        deleted = client.eval(_RELEASE_SCRIPT, 1, _namespaced_key(key), token)
        prometheus_metrics.record_teacher_lock("release", "success" if deleted else "not_found")
    except Exception as exc:
        prometheus_metrics.record_teacher_lock("release", "error")
        logger.warning(
            "teacher_lock_release_failed",
            extra={
                "teacher_id": teacher_id,
                "scope": scope,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def teacher_lock(teacher_id: str, scope: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """
    Hold the teacher's mutex for ``scope`` ("bookings" or "wallet").

    Yields whether the lock was acquired; never blocks waiting for it.
    """
    token = str(ulid.ULID())
    acquired, backend = acquire_teacher_lock(
        teacher_id, scope, token, ttl_s or settings.teacher_lock_ttl_seconds
    )
    try:
        yield acquired
    finally:
        if acquired:
            release_teacher_lock(teacher_id, scope, token, backend)
