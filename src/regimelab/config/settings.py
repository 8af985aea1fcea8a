"""Configuration management for regimelab.

Provides typed, validated configuration objects for the filter, the HMM,
the strategy bank, backtests and allocation, with YAML and environment
loading and runtime reloading support.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from regimelab.core.types import AllocationMethod


class FilterConfig(BaseModel):
    """Adaptive (JMA) filter parameters. Out-of-range values are clamped by the filter."""

    model_config = ConfigDict(extra="forbid")

    length: float = 10
    phase: float = 0
    power: float = 2


class HMMConfig(BaseModel):
    """Hidden Markov Model training configuration."""

    model_config = ConfigDict(extra="forbid")

    num_states: int = Field(3, gt=0)
    num_observations: int = Field(10, gt=0)
    max_iterations: int = Field(50, ge=0)
    tolerance: float = Field(1e-6, ge=0)
    base_seed: int = 12345
    num_runs: int = Field(3, gt=0)
    scaled: bool = True  # raw probabilities underflow after a few hundred observations
    max_workers: Optional[int] = Field(None, gt=0)


class StrategyParams(BaseModel):
    """Per-strategy parameter overrides keyed by strategy."""

    model_config = ConfigDict(extra="forbid")

    state_switch: Dict[str, float] = Field(default_factory=dict)
    probability_threshold: Dict[str, float] = Field(default_factory=dict)
    long_short: Dict[str, float] = Field(default_factory=dict)
    volatility: Dict[str, float] = Field(default_factory=dict)
    mean_reversion: Dict[str, float] = Field(default_factory=dict)
    momentum: Dict[str, float] = Field(default_factory=dict)
    trend_following: Dict[str, float] = Field(default_factory=dict)
    risk_parity: Dict[str, float] = Field(default_factory=dict)
    market_timing: Dict[str, float] = Field(default_factory=dict)
    portfolio_optimization: Dict[str, float] = Field(default_factory=dict)

    def as_mapping(self) -> Dict[str, Dict[str, float]]:
        return self.model_dump()


class BacktestSettings(BaseModel):
    """Backtest simulation settings."""

    model_config = ConfigDict(extra="forbid")

    initial_capital: float = Field(1_000_000, gt=0)
    risk_free_rate: float = 0.03
    trading_days: int = Field(252, gt=0)
    history_length: int = Field(970, gt=0)  # bars kept per instrument


class AllocationConfig(BaseModel):
    """Strategy weighting and portfolio allocation limits."""

    model_config = ConfigDict(extra="forbid", use_enum_values=False)

    max_single_stock_weight: float = Field(0.15, gt=0, le=1)
    min_stock_weight: float = Field(0.01, ge=0, le=1)
    total_equity_weight: float = Field(0.8, gt=0, le=1)
    method: AllocationMethod = AllocationMethod.COMBINED
    max_correlation: float = Field(0.8, ge=0, le=1)
    kelly_fraction: float = Field(0.5, gt=0, le=1)
    final_weight_floor: float = Field(0.005, ge=0)
    weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "sharpe": 0.4,
            "risk_parity": 0.3,
            "correlation": 0.2,
            "kelly": 0.1,
        }
    )

    @field_validator("weights")
    @classmethod
    def check_weight_keys(cls, v: Dict[str, float]) -> Dict[str, float]:
        allowed = {"sharpe", "risk_parity", "correlation", "kelly"}
        unknown = set(v) - allowed
        if unknown:
            raise ValueError(f"Unknown blend weights: {sorted(unknown)}")
        if any(w < 0 for w in v.values()):
            raise ValueError("Blend weights must be non-negative")
        return v

    @model_validator(mode="after")
    def check_bounds(self) -> AllocationConfig:
        if self.min_stock_weight > self.max_single_stock_weight:
            raise ValueError("min_stock_weight exceeds max_single_stock_weight")
        return self


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = Field("INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseModel):
    """Main configuration settings."""

    model_config = ConfigDict(extra="forbid")

    filter: FilterConfig = Field(default_factory=FilterConfig)
    hmm: HMMConfig = Field(default_factory=HMMConfig)
    strategies: StrategyParams = Field(default_factory=StrategyParams)
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> Settings:
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_env(cls) -> Settings:
        """Load configuration from environment with defaults."""
        config_path = os.environ.get("REGIMELAB_CONFIG")
        if config_path:
            return cls.from_yaml(Path(config_path))

        level = os.environ.get("REGIMELAB_LOG_LEVEL", "INFO").upper()
        return cls(logging=LoggingConfig(level=level))

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)


@dataclass
class ConfigManager:
    """Manages configuration lifecycle and reloading."""

    settings: Settings = field(default_factory=Settings.from_env)
    config_path: Optional[Path] = None
    _callbacks: List[Callable[[Settings], Any]] = field(default_factory=list)

    def reload(self) -> None:
        """Reload configuration from source."""
        if self.config_path and self.config_path.exists():
            self.settings = Settings.from_yaml(self.config_path)
        else:
            self.settings = Settings.from_env()

        for callback in self._callbacks:
            callback(self.settings)

    def register_callback(self, callback: Callable[[Settings], Any]) -> None:
        """Register a callback for configuration changes."""
        self._callbacks.append(callback)
