from .technical_analysis import (
    InsufficientDataError,
    bollinger_bands,
    compute_natr14,
    compute_technical_analysis,
    ema,
    ema_value,
    macd,
    natr,
    pivot_levels,
    rsi,
    sma,
    support_resistance,
)

__all__ = [
    'InsufficientDataError',
    'bollinger_bands',
    'compute_natr14',
    'compute_technical_analysis',
    'ema',
    'ema_value',
    'macd',
    'natr',
    'pivot_levels',
    'rsi',
    'sma',
    'support_resistance',
]
