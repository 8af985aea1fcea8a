"""Adaptive filtering, HMM regime detection, strategy backtesting and allocation."""

__version__ = "0.1.0"
