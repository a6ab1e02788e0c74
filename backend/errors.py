"""
Ошибки предметной области кухни.

Хранилище заказов бросает их внутри себя, а публичные операции изменения
статуса превращают их в объекты-результаты. HTTP-слой переводит их в ответы
через один обработчик исключений.
"""
from typing import Optional


class KitchenError(Exception):
    """Базовая ошибка: код для клиента и HTTP-статус"""

    error_code = "KITCHEN_ERROR"
    status_code = 400

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if error_code:
            self.error_code = error_code


class NotFoundError(KitchenError):
    error_code = "NOT_FOUND"
    status_code = 404


class InvalidTransitionError(KitchenError):
    error_code = "INVALID_TRANSITION"
    status_code = 409


class ValidationError(KitchenError):
    error_code = "VALIDATION_ERROR"
    status_code = 422


class AccessDeniedError(KitchenError):
    error_code = "ACCESS_DENIED"
    status_code = 403


class StoreUnavailableError(KitchenError):
    """Хранилище не ответило или упало посреди транзакции"""

    error_code = "STORE_UNAVAILABLE"
    status_code = 503


ERROR_CLASSES = [NotFoundError, InvalidTransitionError, ValidationError, AccessDeniedError, StoreUnavailableError]


def status_for_code(error_code: str) -> int:
    for error_class in ERROR_CLASSES:
        if error_class.error_code == error_code:
            return error_class.status_code
    return KitchenError.status_code
