import json
import redis
from typing import Optional, Any, Callable
from ..config import settings
from .metrics import cache_hits_total, cache_misses_total

_redis_client: Optional[redis.Redis] = None

def get_redis() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True
        )
    return _redis_client

def curriculum_key(course_id: str) -> str:
    return f"course:{course_id}:curriculum"

def analytics_key(course_id: str) -> str:
    return f"course:{course_id}:analytics"

def students_key(course_id: str) -> str:
    return f"course:{course_id}:students"

def get_cache(key: str) -> Optional[Any]:
    """Получить значение из кэша"""
    try:
        client = get_redis()
        value = client.get(key)
        if value:
            return json.loads(value)
    except Exception:
        # Если Redis недоступен, просто возвращаем None
        pass
    return None

def set_cache(key: str, value: Any, ttl: int = None) -> bool:
    """Сохранить значение в кэш"""
    try:
        client = get_redis()
        ttl = ttl or settings.CACHE_TTL
        client.setex(key, ttl, json.dumps(value, ensure_ascii=False, default=str))
        return True
    except Exception:
        # Если Redis недоступен, просто игнорируем
        return False

def delete_cache_pattern(pattern: str) -> int:
    """Удалить все ключи по паттерну"""
    try:
        client = get_redis()
        keys = client.keys(pattern)
        if keys:
            return client.delete(*keys)
        return 0
    except Exception:
        return 0

def cached(key: str, loader: Callable[[], Any]) -> Any:
    """Вернуть значение из кэша или посчитать и положить его туда"""
    value = get_cache(key)
    if value is not None:
        cache_hits_total.inc()
        return value
    cache_misses_total.inc()
    value = loader()
    set_cache(key, value)
    return value

def invalidate_course(course_id: str) -> int:
    """Сбросить всё, что закэшировано по курсу"""
    return delete_cache_pattern(f"course:{course_id}:*")

def invalidate_course_list() -> int:
    return delete_cache_pattern("courses:list:*")
