"""
Structured logging utilities for the zone/regime engine

structlog-based configuration with JSON, key-value and colored renderers,
service context on every event and helpers for session-scoped loggers.
"""

import logging
import sys
import time
from functools import wraps
from typing import Optional, Dict, Any, Union
from pathlib import Path
from enum import Enum

import structlog
from structlog.types import Processor


class LogLevel(str, Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Форматы логирования"""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


# Конфигурация выполняется один раз на процесс
_logging_configured = False


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.JSON,
    log_file: Optional[Union[str, Path]] = None,
    service_name: str = "zone-regime-engine",
    service_version: str = "1.0.0",
    environment: str = "development",
    force: bool = False
) -> None:
    """
    Конфигурация структурированного логирования для всего приложения

    Args:
        level: Уровень логирования
        format_type: Формат вывода логов
        log_file: Путь к файлу логов (опционально)
        service_name: Имя сервиса
        service_version: Версия сервиса
        environment: Среда выполнения
        force: Переконфигурировать, даже если уже настроено
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    processors = [
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.format_exc_info,
        _add_service_context(service_name, service_version, environment),
    ]

    if format_type == LogFormat.JSON:
        processors.append(structlog.processors.JSONRenderer())
    elif format_type == LogFormat.COLORED:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:  # TEXT
        processors.append(
            structlog.processors.KeyValueRenderer(
                key_order=['timestamp', 'level', 'logger', 'event']
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.value)
    )

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, level.value))
        logging.getLogger().addHandler(file_handler)

    _suppress_noisy_loggers()

    _logging_configured = True


def _add_service_context(
    service_name: str,
    service_version: str,
    environment: str
) -> Processor:
    """
    Процессор, добавляющий контекст сервиса к каждому событию

    Args:
        service_name: Имя сервиса
        service_version: Версия сервиса
        environment: Среда выполнения

    Returns:
        Процессор structlog
    """
    def processor(logger, method_name, event_dict):
        event_dict.update({
            'service': service_name,
            'version': service_version,
            'environment': environment,
        })
        return event_dict

    return processor


def _suppress_noisy_loggers():
    """Подавление избыточного логирования от сторонних библиотек"""
    noisy_loggers = [
        'urllib3.connectionpool',
        'asyncio',
        'uvicorn.access',
        'httpx',
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Получение настроенного структурированного логгера

    Args:
        name: Имя логгера (по умолчанию __name__ вызывающего модуля)

    Returns:
        Настроенный структурированный логгер
    """
    if not _logging_configured:
        configure_logging()

    if name is None:
        import inspect
        frame = inspect.currentframe().f_back
        name = frame.f_globals.get('__name__', 'unknown')

    return structlog.get_logger(name)


def get_session_logger(
    symbol: str,
    timeframe: str,
    component: Optional[str] = None
) -> structlog.stdlib.BoundLogger:
    """
    Логгер с привязанным контекстом торговой сессии

    Args:
        symbol: Торговый инструмент
        timeframe: Таймфрейм
        component: Компонент (zones, regime, signals)

    Returns:
        Логгер с контекстом сессии
    """
    logger = get_logger("session")

    context = {
        'symbol': symbol,
        'timeframe': timeframe
    }
    if component:
        context['component'] = component

    return logger.bind(**context)


def log_performance_metrics(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    duration_seconds: float,
    success: bool = True,
    additional_metrics: Optional[Dict[str, Any]] = None
):
    """
    Логирование метрик производительности

    Args:
        logger: Логгер для записи
        operation: Название операции
        duration_seconds: Длительность в секундах
        success: Успешность операции
        additional_metrics: Дополнительные метрики
    """
    metrics = {
        'operation': operation,
        'duration_seconds': round(duration_seconds, 4),
        'success': success,
        'performance_log': True
    }

    if additional_metrics:
        metrics.update(additional_metrics)

    if success:
        logger.debug(f"Performance: {operation} completed", **metrics)
    else:
        logger.error(f"Performance: {operation} failed", **metrics)


class LoggerMixin:
    """
    Mixin для добавления логирования в классы

    Логгер создается лениво и получает контекст класса; дополнительный
    контекст задается через set_log_context.
    """

    _logger = None
    _log_context: Optional[Dict[str, Any]] = None

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Получение логгера для класса"""
        if self._logger is None:
            class_name = self.__class__.__name__
            logger_name = f"{self.__class__.__module__}.{class_name}"

            context = {'class': class_name, **(self._log_context or {})}
            self._logger = get_logger(logger_name).bind(**context)

        return self._logger

    def set_log_context(self, **kwargs):
        """
        Установка дополнительного контекста для логирования

        Args:
            **kwargs: Контекстные переменные
        """
        self._log_context = {**(self._log_context or {}), **kwargs}
        # Сброс логгера для пересоздания с новым контекстом
        self._logger = None


def timed_operation(operation_name: Optional[str] = None):
    """
    Декоратор для измерения времени выполнения операций

    Args:
        operation_name: Имя операции (по умолчанию имя функции)

    Returns:
        Декоратор функции
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            op_name = operation_name or func.__name__

            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_performance_metrics(
                    logger=logger,
                    operation=op_name,
                    duration_seconds=time.perf_counter() - start_time,
                    success=False,
                    additional_metrics={'error': str(e)}
                )
                raise

            log_performance_metrics(
                logger=logger,
                operation=op_name,
                duration_seconds=time.perf_counter() - start_time,
                success=True
            )
            return result

        return wrapper
    return decorator
