"""In-process TTL cache for read-mostly rows (no Redis)."""
import json
import time
from typing import Any, Optional, Dict, Tuple

CACHE_PREFIX_DISCOUNT_CODES = "discount_code"

_memory: Dict[str, Tuple[float, str]] = {}  # key -> (expires_at, json_value)


def cache_get(key: str) -> Optional[Any]:
    entry = _memory.get(key)
    if entry is None:
        return None
    expires_at, raw = entry
    if time.monotonic() > expires_at:
        _memory.pop(key, None)
        return None
    return json.loads(raw)


def cache_set(key: str, value: Any, ttl_seconds: int) -> bool:
    if ttl_seconds <= 0:
        return False
    _memory[key] = (time.monotonic() + ttl_seconds, json.dumps(value, default=str))
    return True


def cache_delete(key: str) -> bool:
    _memory.pop(key, None)
    return True


def cache_delete_pattern(prefix: str) -> bool:
    to_del = [k for k in list(_memory) if k.startswith(prefix)]
    for k in to_del:
        _memory.pop(k, None)
    return True


def discount_cache_key(code: str) -> str:
    return f"{CACHE_PREFIX_DISCOUNT_CODES}:{code}"
