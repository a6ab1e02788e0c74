"""
Модуль для работы с Redis: кеширование справочников, события кухни и rate limiting.

Redis необязателен: при недоступности все методы тихо возвращают
"пустой" результат, а приложение работает напрямую с базой.
"""
import json
import logging
import redis
from typing import Optional, List, Dict, Any, Tuple
from functools import wraps
from fastapi import HTTPException, status
import time

from config import REDIS_HOST, REDIS_PORT

logger = logging.getLogger(__name__)

KITCHEN_EVENTS_CHANNEL = "kitchen:events"


class RedisClient:
    """Класс для работы с Redis"""

    def __init__(self, host: str = REDIS_HOST, port: int = REDIS_PORT):
        """Инициализация подключения к Redis"""
        self.redis_host = host
        self.redis_port = port

        try:
            self.client = redis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2
            )
            # Проверяем подключение
            self.client.ping()
        except Exception as e:
            logger.warning(f"Не удалось подключиться к Redis: {e}")
            self.client = None

    def is_available(self) -> bool:
        """Проверка доступности Redis"""
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    def _get_json(self, key: str) -> Optional[Any]:
        if not self.is_available():
            return None
        try:
            cached = self.client.get(key)
            if cached:
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Ошибка получения {key} из кеша: {e}")
        return None

    def _set_json(self, key: str, value: Any, ttl: int) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning(f"Ошибка кеширования {key}: {e}")
            return False

    # ========== Кеширование меню и кухонь ==========

    def cache_menu(self, menu_items: List[Dict], ttl: int = 300) -> bool:
        """
        Кеширует список блюд
        ttl: время жизни кеша в секундах (по умолчанию 5 минут)
        """
        return self._set_json("menu:all", menu_items, ttl)

    def get_cached_menu(self) -> Optional[List[Dict]]:
        return self._get_json("menu:all")

    def cache_kitchens(self, kitchens: List[Dict], ttl: int = 300) -> bool:
        return self._set_json("kitchens:all", kitchens, ttl)

    def get_cached_kitchens(self) -> Optional[List[Dict]]:
        return self._get_json("kitchens:all")

    # ========== Доска кухни ==========

    def cache_kitchen_board(self, kitchen_key: str, board: Dict, ttl: int = 60) -> bool:
        """Последняя опубликованная доска кухни (для дисплеев, читающих без пересчета)"""
        return self._set_json(f"board:{kitchen_key}", board, ttl)

    def get_cached_kitchen_board(self, kitchen_key: str) -> Optional[Dict]:
        return self._get_json(f"board:{kitchen_key}")

    def invalidate_kitchen_boards(self) -> bool:
        if not self.is_available():
            return False
        try:
            keys = self.client.keys("board:*")
            if keys:
                self.client.delete(*keys)
            return True
        except Exception as e:
            logger.warning(f"Ошибка инвалидации досок кухни: {e}")
            return False

    # ========== События ==========

    def publish_event(self, kind: str, payload: Dict) -> bool:
        """Публикует событие в канал кухни (дисплеи подписываются и обновляются)"""
        if not self.is_available():
            return False
        try:
            message = json.dumps({"kind": kind, **payload}, default=str)
            self.client.publish(KITCHEN_EVENTS_CHANNEL, message)
            return True
        except Exception as e:
            logger.warning(f"Ошибка публикации события {kind}: {e}")
            return False

    # ========== Rate Limiting ==========

    def check_rate_limit(self, key: str, max_requests: int = 10, window: int = 60) -> Tuple[bool, int]:
        """
        Проверяет rate limit для ключа
        Возвращает (разрешено, оставшееся количество запросов)
        """
        if not self.is_available():
            return True, max_requests  # Если Redis недоступен, разрешаем запрос

        try:
            current = self.client.incr(key)
            if current == 1:
                # Первый запрос в окне - устанавливаем TTL
                self.client.expire(key, window)

            remaining = max(0, max_requests - current)
            allowed = current <= max_requests

            return allowed, remaining
        except Exception as e:
            logger.warning(f"Ошибка проверки rate limit: {e}")
            return True, max_requests

    # ========== Утилиты ==========

    def get_cache_info(self) -> Dict[str, Any]:
        """Возвращает информацию о кеше"""
        if not self.is_available():
            return {"status": "unavailable"}

        try:
            return {
                "status": "available",
                "menu_cached": self.client.exists("menu:all"),
                "kitchens_cached": self.client.exists("kitchens:all"),
                "boards_cached": len(self.client.keys("board:*")),
            }
        except Exception as e:
            return {"status": "error", "error": str(e)}


# Глобальный экземпляр клиента Redis
redis_client = RedisClient()


# ========== Декораторы для rate limiting ==========

def rate_limit(max_requests: int = 10, window: int = 60, key_prefix: str = "rate_limit"):
    """
    Декоратор для rate limiting
    max_requests: максимальное количество запросов
    window: окно времени в секундах
    key_prefix: префикс для ключа в Redis
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = kwargs.get('request')

            if request is not None and request.client is not None:
                rate_key = f"{key_prefix}:{func.__name__}:{request.client.host}"
            else:
                rate_key = f"{key_prefix}:{func.__name__}:global"

            allowed, remaining = redis_client.check_rate_limit(rate_key, max_requests, window)

            if not allowed:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Rate limit exceeded. Try again in {window} seconds.",
                    headers={
                        "X-RateLimit-Limit": str(max_requests),
                        "X-RateLimit-Reset": str(int(time.time()) + window),
                    },
                )

            return await func(*args, **kwargs)
        return wrapper
    return decorator
