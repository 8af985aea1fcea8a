from regimelab.features.discretize import discretize, extract_features
from regimelab.features.indicators import IndicatorSet, TechnicalIndicators, compute_indicators
from regimelab.features.jma import AdaptiveFilter, FilterState, compute_series, jma_step
from regimelab.features.shape import classify_shape, classify_shapes, shape_signals, signal_series

__all__ = [
    "AdaptiveFilter",
    "FilterState",
    "IndicatorSet",
    "TechnicalIndicators",
    "classify_shape",
    "classify_shapes",
    "compute_indicators",
    "compute_series",
    "discretize",
    "extract_features",
    "jma_step",
    "shape_signals",
    "signal_series",
]
