"""Коды результатов операций ядра"""

from enum import Enum


class ErrorCode(str, Enum):
    """Результат операции: success или вид ошибки

    Операции возвращают (значение, код) вместо исключений.
    """

    SUCCESS = "success"
    # Бизнес/услуга/сотрудник/запись/промокод не найдены или чужие
    NOT_FOUND = "not_found"
    # Некорректный ввод, окно записи, запрет политикой, сотрудник не умеет
    INVALID_REQUEST = "invalid_request"
    # Слот или интервал уже занят, либо параллельное изменение
    CONFLICT = "conflict"
    # Промокод не прошел проверку (причина не раскрывается)
    INVALID = "invalid"
    # Ошибка хранилища; вызывающий повторяет операцию целиком
    UNKNOWN_ERROR = "unknown_error"
