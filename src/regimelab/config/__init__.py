from regimelab.config.settings import (
    AllocationConfig,
    BacktestSettings,
    ConfigManager,
    FilterConfig,
    HMMConfig,
    LoggingConfig,
    Settings,
    StrategyParams,
)

__all__ = [
    "AllocationConfig",
    "BacktestSettings",
    "ConfigManager",
    "FilterConfig",
    "HMMConfig",
    "LoggingConfig",
    "Settings",
    "StrategyParams",
]
