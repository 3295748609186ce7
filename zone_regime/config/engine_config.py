"""
Configuration management for the zone/regime engine.

Pydantic settings grouped per component (zones, regime, patterns, signals,
risk, instrument, execution, API, monitoring) with environment overrides
and YAML load/save.
"""

from typing import List, Optional, Union, Literal
from pathlib import Path
from enum import Enum

from pydantic import Field, field_validator, model_validator
from pydantic.types import PositiveInt, PositiveFloat, NonNegativeFloat
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.helpers import floor_to_step


class LogLevel(str, Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _check_weights(values: List[float], expected: int) -> List[float]:
    """Веса компонентов: нужное количество, неотрицательные, сумма 1"""
    if len(values) != expected:
        raise ValueError(f"Expected {expected} weights, got {len(values)}")
    if any(w < 0 for w in values):
        raise ValueError("Weights must be non-negative")
    if abs(sum(values) - 1.0) > 1e-6:
        raise ValueError(f"Weights must sum to 1.0, got {sum(values):.4f}")
    return values


class ZoneConfig(BaseSettings):
    """
    Конфигурация детектора пивотов и хранилища зон
    """

    # === Пивоты ===
    pivot_window: PositiveInt = Field(
        default=2,
        le=10,
        description="Баров контекста с каждой стороны пивота"
    )

    zone_thickness: PositiveFloat = Field(
        default=0.0010,
        description="Толщина зоны в единицах цены"
    )

    thickness_atr_multiple: Optional[PositiveFloat] = Field(
        default=None,
        description="Толщина как множитель ATR (перекрывает zone_thickness)"
    )

    history_bars: PositiveInt = Field(
        default=500,
        ge=5,
        description="Глубина истории для поиска пивотов"
    )

    # === Хранилище ===
    max_zones: PositiveInt = Field(
        default=50,
        le=1000,
        description="Жесткий лимит одновременно хранимых зон"
    )

    merge_distance: PositiveFloat = Field(
        default=0.0015,
        description="Дистанция слияния зон одной полярности"
    )

    merge_bonus: NonNegativeFloat = Field(
        default=0.5,
        description="Бонус силы победителю слияния"
    )

    min_touches: PositiveInt = Field(
        default=2,
        description="Минимум касаний для валидной зоны"
    )

    min_strength: NonNegativeFloat = Field(
        default=3.0,
        description="Минимальная сила для валидной зоны"
    )

    # === Мульти-таймфрейм ===
    higher_timeframe: Optional[str] = Field(
        default="4h",
        description="Старший таймфрейм для конфлюенции"
    )

    higher_timeframe_bars: PositiveInt = Field(
        default=200,
        description="Глубина истории старшего таймфрейма"
    )

    confluence_tolerance: NonNegativeFloat = Field(
        default=0.0010,
        description="Допуск совпадения зоны со свингом старшего таймфрейма"
    )

    refresh_interval: PositiveInt = Field(
        default=20,
        description="Пересчет пивотов каждые N баров"
    )

    event_history: PositiveInt = Field(
        default=500,
        description="Размер истории событий зон"
    )

    model_config = SettingsConfigDict(env_prefix="ZR_ZONES_", case_sensitive=False)


class RegimeConfig(BaseSettings):
    """
    Конфигурация классификатора режима рынка
    """

    # === Окно ===
    lookback: PositiveInt = Field(default=100, ge=20, description="Баров в окне классификации")
    min_bars: PositiveInt = Field(default=60, ge=10, description="Минимум баров для классификации")
    update_interval: PositiveInt = Field(default=5, description="Пересчет режима каждые N баров")

    # === Периоды индикаторов ===
    adx_period: PositiveInt = 14
    rsi_period: PositiveInt = 14
    atr_period: PositiveInt = 14
    atr_long_period: PositiveInt = 50
    bb_period: PositiveInt = 20
    bb_std: PositiveFloat = 2.0
    ema_fast: PositiveInt = 8
    ema_mid: PositiveInt = 21
    ema_slow: PositiveInt = 50
    macd_fast: PositiveInt = 12
    macd_slow: PositiveInt = 26
    macd_signal: PositiveInt = 9

    # === Окна компонентов ===
    regression_period: PositiveInt = Field(default=20, ge=3)
    momentum_period: PositiveInt = 10
    consistency_lookback: PositiveInt = 10
    containment_lookback: PositiveInt = Field(default=20, ge=3)
    volume_window: PositiveInt = 5
    squeeze_lookback: PositiveInt = 50
    consolidation_bars: PositiveInt = 10
    divergence_lookback: PositiveInt = Field(default=14, ge=3)

    # === Масштабирование ===
    slope_scale: PositiveFloat = Field(default=500.0, description="Наклон в %/бар -> очки")
    momentum_scale: PositiveFloat = Field(default=20.0, description="ROC в % -> очки")
    range_decay: PositiveFloat = Field(default=2.0, description="Скорость затухания ATR/ширина полос")
    atr_pct_ceiling: PositiveFloat = Field(default=2.0, description="ATR% для 100 очков")
    bandwidth_pct_ceiling: PositiveFloat = Field(default=10.0, description="Ширина полос % для 100 очков")
    gap_threshold: PositiveFloat = Field(default=0.001, description="Относительный порог гэпа")
    compactness_atr_multiple: PositiveFloat = Field(default=5.0)
    rsi_overbought: float = Field(default=70.0, gt=50, le=100)
    rsi_oversold: float = Field(default=30.0, ge=0, lt=50)

    # === Веса ===
    trend_weights: List[float] = Field(default_factory=lambda: [0.20, 0.20, 0.15, 0.15, 0.15, 0.15])
    range_weights: List[float] = Field(default_factory=lambda: [0.2, 0.3, 0.2, 0.1, 0.2])
    volatility_weights: List[float] = Field(default_factory=lambda: [0.3, 0.2, 0.15, 0.15, 0.2])
    breakout_weights: List[float] = Field(default_factory=lambda: [0.25, 0.20, 0.20, 0.15, 0.20])
    breakout_power: PositiveFloat = Field(default=1.2, description="Степенная кривая breakout score")

    # === Разрешение режима ===
    trending_floor: float = Field(default=55.0, ge=0, le=100)
    ranging_floor: float = Field(default=60.0, ge=0, le=100)
    volatile_floor: float = Field(default=65.0, ge=0, le=100)
    breakout_floor: float = Field(default=60.0, ge=0, le=100)
    dominance_margin: NonNegativeFloat = Field(default=5.0, description="Отрыв от второго режима")
    fallback_volatility: float = Field(default=70.0, ge=0, le=100)

    @field_validator('trend_weights')
    @classmethod
    def validate_trend_weights(cls, v):
        return _check_weights(v, 6)

    @field_validator('range_weights', 'volatility_weights', 'breakout_weights')
    @classmethod
    def validate_five_weights(cls, v):
        return _check_weights(v, 5)

    @model_validator(mode='after')
    def validate_windows(self):
        """Окно должно вмещать медленную EMA и длинный ATR"""
        if self.min_bars > self.lookback:
            raise ValueError("min_bars cannot exceed lookback")
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast must be shorter than macd_slow")
        return self

    model_config = SettingsConfigDict(env_prefix="ZR_REGIME_", case_sensitive=False)


class PatternConfig(BaseSettings):
    """
    Геометрические пороги свечных паттернов
    """

    base_reliability: NonNegativeFloat = Field(default=5.0, description="Базовая надежность паттерна")
    doji_body_ratio: PositiveFloat = Field(default=0.1, lt=1, description="Тело доджи / диапазон")
    long_body_ratio: PositiveFloat = Field(default=0.6, lt=1, description="Длинное тело / диапазон")
    marubozu_body_ratio: PositiveFloat = Field(default=0.9, le=1, description="Тело марубозу / диапазон")
    wick_body_multiple: PositiveFloat = Field(default=2.0, description="Тень молота / тело")
    small_wick_ratio: PositiveFloat = Field(default=0.1, lt=1, description="Малая тень / диапазон")
    star_body_ratio: PositiveFloat = Field(default=0.3, lt=1, description="Тело звезды / тело первой свечи")
    tweezer_tolerance_ratio: PositiveFloat = Field(default=0.05, description="Допуск пинцета / средний диапазон")
    trend_lookback: PositiveInt = Field(default=3, description="Баров для определения предшествующего движения")
    zone_proximity_ratio: NonNegativeFloat = Field(default=0.5, description="Допуск близости к зоне / высота зоны")
    zone_polarity_bonus: NonNegativeFloat = Field(default=1.0)

    model_config = SettingsConfigDict(env_prefix="ZR_PATTERNS_", case_sensitive=False)


class SignalConfig(BaseSettings):
    """
    Конфигурация генератора сигналов
    """

    # === Bounce ===
    bounce_tolerance: NonNegativeFloat = Field(default=0.0005, description="Допуск к границе зоны")
    rsi_period: PositiveInt = 14
    rsi_oversold: float = Field(default=30.0, ge=0, lt=50)
    rsi_overbought: float = Field(default=70.0, gt=50, le=100)
    adx_period: PositiveInt = 14
    adx_strong_trend: PositiveFloat = Field(default=30.0, description="Потолок ADX для отскока")
    min_pattern_reliability: NonNegativeFloat = Field(default=6.0)
    bounce_blocked_regimes: List[str] = Field(default_factory=lambda: ["breakout"])

    # === Breakout ===
    adx_momentum: PositiveFloat = Field(default=25.0, description="Минимальный ADX для пробоя")
    require_volume_confirmation: bool = Field(
        default=False,
        description="Объем обязателен (иначе только информативен)"
    )
    volume_factor: PositiveFloat = Field(default=1.2, description="Объем пробоя / средний объем")
    volume_average_period: PositiveInt = 20
    breakout_max_age: int = Field(default=2, ge=0, description="Баров с пробоя до 'пропущен'")
    breakout_retest_window: PositiveInt = Field(default=10, description="Окно поиска пробоя и ретеста")
    breakout_blocked_regimes: List[str] = Field(default_factory=lambda: ["ranging"])

    # === ATR ===
    atr_period: PositiveInt = 14

    @field_validator('bounce_blocked_regimes', 'breakout_blocked_regimes')
    @classmethod
    def validate_regimes(cls, v):
        allowed = {"trending", "ranging", "volatile", "breakout", "neutral"}
        normalized = [r.lower() for r in v]
        unknown = set(normalized) - allowed
        if unknown:
            raise ValueError(f"Unknown regimes: {sorted(unknown)}")
        return normalized

    model_config = SettingsConfigDict(env_prefix="ZR_SIGNALS_", case_sensitive=False)


class RiskConfig(BaseSettings):
    """
    Риск-менеджмент: стопы, цели, размер позиции, сопровождение
    """

    account_balance: PositiveFloat = Field(default=10000.0, description="Баланс по умолчанию (бэктест)")
    risk_percent: float = Field(default=1.0, gt=0, le=10, description="Риск на сделку, %")
    atr_buffer_multiple: NonNegativeFloat = Field(default=0.5, description="Буфер стопа в ATR")
    min_reward_risk: PositiveFloat = Field(default=1.5, description="Минимальное отношение прибыль/риск")
    default_reward_ratio: PositiveFloat = Field(default=2.0, description="Цель в R без противоположной зоны")

    # === Сопровождение позиции ===
    breakeven_at_r: Optional[PositiveFloat] = Field(default=1.0, description="Перенос стопа в безубыток")
    partial_close_at_r: Optional[PositiveFloat] = Field(default=1.5, description="Частичное закрытие")
    partial_close_fraction: float = Field(default=0.5, gt=0, lt=1)

    model_config = SettingsConfigDict(env_prefix="ZR_RISK_", case_sensitive=False)


class InstrumentConfig(BaseSettings):
    """
    Спецификация инструмента у брокера
    """

    tick_size: PositiveFloat = Field(default=0.00001, description="Шаг цены")
    tick_value: PositiveFloat = Field(default=1.0, description="Стоимость шага на 1 лот")
    min_lot: PositiveFloat = 0.01
    max_lot: PositiveFloat = 100.0
    lot_step: PositiveFloat = 0.01
    min_stop_distance: NonNegativeFloat = Field(default=0.0010, description="Минимальная дистанция стопа")
    spread: NonNegativeFloat = Field(default=0.0001, description="Текущий спред")

    @model_validator(mode='after')
    def validate_lots(self):
        if self.min_lot > self.max_lot:
            raise ValueError("min_lot cannot exceed max_lot")
        for name in ('min_lot', 'max_lot'):
            value = getattr(self, name)
            if floor_to_step(value, self.lot_step) != value:
                raise ValueError(f"{name} {value} is not a multiple of lot_step {self.lot_step}")
        return self

    model_config = SettingsConfigDict(env_prefix="ZR_INSTRUMENT_", case_sensitive=False)


class ExecutionConfig(BaseSettings):
    """
    Политика повторов порта исполнения
    """

    max_attempts: PositiveInt = Field(default=3, le=10)
    backoff_seconds: NonNegativeFloat = Field(default=1.0, le=60)
    retryable_reasons: List[str] = Field(
        default_factory=lambda: ["requote", "timeout", "busy", "off_quotes", "price_changed"]
    )

    model_config = SettingsConfigDict(env_prefix="ZR_EXECUTION_", case_sensitive=False)


class APIConfig(BaseSettings):
    """
    Конфигурация HTTP API
    """

    host: str = Field(default="0.0.0.0", description="Хост API")
    port: PositiveInt = Field(default=8000, ge=1000, le=65535, description="Порт API")
    debug: bool = Field(default=False, description="Режим отладки")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Разрешенные CORS origins"
    )
    max_bars_per_request: PositiveInt = Field(default=5000)

    model_config = SettingsConfigDict(env_prefix="ZR_API_", case_sensitive=False)


class MonitoringConfig(BaseSettings):
    """
    Логирование
    """

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Уровень логирования")
    log_format: Literal["json", "text", "colored"] = Field(default="json", description="Формат логов")
    log_file: Optional[str] = Field(default=None, description="Файл логов")

    model_config = SettingsConfigDict(env_prefix="ZR_MONITORING_", case_sensitive=False)


class EngineConfig(BaseSettings):
    """
    Главная конфигурация движка

    Объединяет конфигурации всех компонентов. Сессии получают экземпляр
    явно; get_config() используется только точками входа (API, примеры).
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Среда выполнения"
    )
    service_name: str = Field(default="zone-regime-engine", description="Имя сервиса")
    version: str = Field(default="1.0.0", description="Версия сервиса")

    zones: ZoneConfig = Field(default_factory=ZoneConfig)
    regime: RegimeConfig = Field(default_factory=RegimeConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    signals: SignalConfig = Field(default_factory=SignalConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    instrument: InstrumentConfig = Field(default_factory=InstrumentConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    stats_dir: Path = Field(default=Path("./stats"), description="Каталог статистики")

    def is_production(self) -> bool:
        """Проверить production среду"""
        return self.environment == "production"

    model_config = SettingsConfigDict(
        env_prefix="ZR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """
    Конфигурация по умолчанию для точек входа

    Returns:
        Экземпляр EngineConfig
    """
    global _config
    if _config is None:
        _config = EngineConfig()
    return _config


def reload_config() -> EngineConfig:
    """
    Перечитать конфигурацию из окружения

    Returns:
        Новый экземпляр EngineConfig
    """
    global _config
    _config = EngineConfig()
    return _config


def load_config_from_file(config_path: Union[str, Path]) -> EngineConfig:
    """
    Загрузить конфигурацию из YAML файла

    Args:
        config_path: Путь к файлу конфигурации

    Returns:
        Экземпляр EngineConfig
    """
    import yaml

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    return EngineConfig(**config_data)


def save_config_to_file(config: EngineConfig, config_path: Union[str, Path]) -> None:
    """
    Сохранить конфигурацию в YAML файл

    Args:
        config: Экземпляр конфигурации
        config_path: Путь для сохранения
    """
    import yaml

    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config.model_dump(mode='json'), f, default_flow_style=False, sort_keys=False)
