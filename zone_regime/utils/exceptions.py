"""
Custom exceptions for the zone/regime analysis engine

Exception hierarchy shared by the analytical cores, the ports and the API.
Expected conditions (data gaps, broker rejections, full zone store) are
recovered locally and never cross component boundaries as exceptions; the
classes below describe the failures that do.
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ZoneRegimeException(Exception):
    """
    Базовое исключение для движка зон и режимов рынка

    Все специфические исключения наследуются от этого класса
    для единообразной обработки ошибок.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        """
        Инициализация базового исключения

        Args:
            message: Сообщение об ошибке
            error_code: Код ошибки для программной обработки
            details: Дополнительные детали ошибки
            original_exception: Исходное исключение (если есть)
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now()

        if original_exception:
            self.details['original_error'] = str(original_exception)
            self.details['original_type'] = type(original_exception).__name__

    def to_dict(self) -> Dict[str, Any]:
        """
        Конвертация исключения в словарь для JSON сериализации

        Returns:
            Словарь с информацией об ошибке
        """
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
            'original_exception': str(self.original_exception) if self.original_exception else None
        }

    def __str__(self) -> str:
        base_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            base_msg += f" | Details: {self.details}"
        return base_msg


class InsufficientDataException(ZoneRegimeException):
    """
    Недостаточно баров или точек объема для операции

    Ядра перехватывают это состояние локально (уменьшенное окно,
    нейтральный режим); исключение поднимается только на границе данных.
    """

    def __init__(
        self,
        message: str,
        required_samples: Optional[int] = None,
        provided_samples: Optional[int] = None
    ):
        details = {}
        if required_samples is not None:
            details['required_samples'] = required_samples
        if provided_samples is not None:
            details['provided_samples'] = provided_samples

        super().__init__(
            message=message,
            error_code="INSUFFICIENT_DATA",
            details=details
        )


class InvalidDataException(ZoneRegimeException):
    """
    Некорректные входные данные

    Отсутствующие колонки OHLCV, нарушенная логика high/low,
    нечисловые значения и т.д.
    """

    def __init__(
        self,
        message: str,
        validation_errors: Optional[Dict[str, Any]] = None,
        data_info: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if validation_errors:
            details['validation_errors'] = validation_errors
        if data_info:
            details['data_info'] = data_info

        super().__init__(
            message=message,
            error_code="INVALID_DATA",
            details=details,
            original_exception=original_exception
        )


class ConfigurationException(ZoneRegimeException):
    """Некорректные параметры конфигурации"""

    def __init__(
        self,
        message: str,
        config_section: Optional[str] = None,
        invalid_params: Optional[Dict[str, Any]] = None
    ):
        details = {}
        if config_section:
            details['config_section'] = config_section
        if invalid_params:
            details['invalid_params'] = invalid_params

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details
        )


class ExecutionException(ZoneRegimeException):
    """
    Ошибка на стороне порта исполнения

    Отказ брокера в штатной ситуации возвращается как неуспешный
    TradeResult; исключение используется для неожиданных сбоев адаптера.
    """

    def __init__(
        self,
        message: str,
        ticket: Optional[str] = None,
        attempts: Optional[int] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if ticket is not None:
            details['ticket'] = ticket
        if attempts is not None:
            details['attempts'] = attempts

        super().__init__(
            message=message,
            error_code="EXECUTION_ERROR",
            details=details,
            original_exception=original_exception
        )


class PersistenceException(ZoneRegimeException):
    """Поврежденная или нечитаемая сохраненная статистика"""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        details = {}
        if path:
            details['path'] = path

        super().__init__(
            message=message,
            error_code="PERSISTENCE_ERROR",
            details=details,
            original_exception=original_exception
        )


class APIException(ZoneRegimeException):
    """Ошибка HTTP API"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None
    ):
        details = {}
        if status_code:
            details['status_code'] = status_code
        if endpoint:
            details['endpoint'] = endpoint

        super().__init__(
            message=message,
            error_code="API_ERROR",
            details=details
        )


def create_error_response(exception: ZoneRegimeException) -> Dict[str, Any]:
    """
    Создание стандартизированного ответа об ошибке для API

    Args:
        exception: Исключение движка

    Returns:
        Словарь с информацией об ошибке для API ответа
    """
    return {
        "success": False,
        "error": {
            "type": exception.__class__.__name__,
            "code": exception.error_code,
            "message": exception.message,
            "details": exception.details,
            "timestamp": exception.timestamp.isoformat()
        }
    }


def log_exception(logger, exception: Exception, context: Optional[Dict[str, Any]] = None):
    """
    Логирование исключения с контекстом

    Args:
        logger: Структурированный логгер
        exception: Исключение для логирования
        context: Дополнительный контекст
    """
    context = context or {}

    if isinstance(exception, ZoneRegimeException):
        logger.error(
            f"Engine exception: {exception.message}",
            error_code=exception.error_code,
            error_type=exception.__class__.__name__,
            details=exception.details,
            **context
        )
    else:
        logger.error(
            f"Unexpected exception: {exception}",
            error_type=type(exception).__name__,
            exc_info=True,
            **context
        )
