"""Configuration for the zone/regime engine"""

from .engine_config import (
    EngineConfig,
    ZoneConfig,
    RegimeConfig,
    PatternConfig,
    SignalConfig,
    RiskConfig,
    InstrumentConfig,
    ExecutionConfig,
    APIConfig,
    MonitoringConfig,
    get_config,
    reload_config,
    load_config_from_file,
    save_config_to_file
)

__all__ = [
    "EngineConfig",
    "ZoneConfig",
    "RegimeConfig",
    "PatternConfig",
    "SignalConfig",
    "RiskConfig",
    "InstrumentConfig",
    "ExecutionConfig",
    "APIConfig",
    "MonitoringConfig",
    "get_config",
    "reload_config",
    "load_config_from_file",
    "save_config_to_file"
]
