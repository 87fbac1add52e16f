"""Runtime overrides for engine configuration backed by operator_settings.DbSetting."""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any

_CACHE_TTL_SECONDS = 5.0
_MISSING = object()


@dataclass(frozen=True)
class _CacheEntry:
    expires_at: float
    value: object


_cache: dict[str, _CacheEntry] = {}
_cache_lock = Lock()


def clear_settings_cache() -> None:
    with _cache_lock:
        _cache.clear()


def _cache_get(key: str, now: float) -> object | None:
    with _cache_lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            _cache.pop(key, None)
            return None
        return entry.value


def _cache_set(key: str, now: float, value: object) -> None:
    with _cache_lock:
        _cache[key] = _CacheEntry(expires_at=now + _CACHE_TTL_SECONDS, value=value)


def _load_current_value(key: str) -> object:
    from django.apps import apps as django_apps

    if not django_apps.ready or not django_apps.is_installed("operator_settings"):
        return _MISSING

    from django.db.models import F, Q
    from django.utils import timezone

    DbSetting = django_apps.get_model("operator_settings", "DbSetting")
    value = (
        DbSetting.objects.filter(key=key)
        .filter(Q(effective_at__isnull=True) | Q(effective_at__lte=timezone.now()))
        .order_by(F("effective_at").desc(nulls_last=True), "-updated_at")
        .values_list("value_json", flat=True)
        .first()
    )
    return _MISSING if value is None else value


def get_setting(key: str, default: Any) -> Any:
    """
    Return the operator override for ``key`` or ``default``.

    The newest row whose ``effective_at`` is empty or already reached wins.
    Lookups (misses included) are cached in-process for a few seconds, and a
    database that is unavailable or not yet migrated resolves to ``default``.
    """
    now_mono = time.monotonic()
    cached = _cache_get(key, now_mono)
    if cached is not None:
        return default if cached is _MISSING else copy.deepcopy(cached)

    try:
        value = _load_current_value(key)
    except Exception:
        value = _MISSING

    _cache_set(key, now_mono, value)
    return default if value is _MISSING else copy.deepcopy(value)


def get_int(key: str, default: int = 0) -> int:
    value = get_setting(key, default)
    return value if type(value) is int else default


def get_non_negative_int(key: str, default: int) -> int:
    """Like get_int, but negative overrides fall back to the default."""
    value = get_int(key, default)
    return value if value >= 0 else default
