"""
技术指标计算引擎
SMA / EMA / RSI / MACD / 布林带 / 枢轴点 / NATR / 支撑阻力
输入序列按时间升序排列（调用方负责排序），所有函数无副作用
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence


class InsufficientDataError(ValueError):
    """输入序列长度不足以计算指标"""


@dataclass
class MACDResult:
    macd: float
    signal: float
    histogram: float
    fast_period: int
    slow_period: int
    signal_period: int

    def to_dict(self) -> dict:
        return {
            "macd": self.macd,
            "signal": self.signal,
            "histogram": self.histogram,
            "fastPeriod": self.fast_period,
            "slowPeriod": self.slow_period,
            "signalPeriod": self.signal_period,
        }


@dataclass
class BollingerBandsResult:
    middle: float
    upper: float
    lower: float
    std_dev: float
    period: int
    std_mult: float

    def to_dict(self) -> dict:
        return {
            "middle": self.middle,
            "upper": self.upper,
            "lower": self.lower,
            "stdDev": self.std_dev,
            "period": self.period,
            "stdMult": self.std_mult,
        }


@dataclass
class PivotLevels:
    pivot: float
    r1: float
    r2: float
    s1: float
    s2: float


@dataclass
class TechnicalAnalysis:
    """综合分析结果"""
    symbol: str
    interval: str
    limit: int
    last_close: float
    rsi_value: float
    rsi_period: int
    macd: MACDResult
    bollinger: BollingerBandsResult
    recent_high: float
    recent_low: float
    lookback: int
    pivots: PivotLevels
    sma: Dict[str, float] = field(default_factory=dict)
    ema: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "interval": self.interval,
            "limit": self.limit,
            "lastClose": self.last_close,
            "rsi": {"value": self.rsi_value, "period": self.rsi_period},
            "macd": self.macd.to_dict(),
            "bollinger": self.bollinger.to_dict(),
            "sma": dict(self.sma),
            "ema": dict(self.ema),
            "supportResistance": {
                "recentHigh": self.recent_high,
                "recentLow": self.recent_low,
                "pivots": asdict(self.pivots),
                "lookback": self.lookback,
            },
        }


# ============================================
# 基础指标
# ============================================

def sma(values: Sequence[float], period: int) -> float:
    """最后 period 个值的算术平均"""
    if period <= 0:
        raise ValueError("invalid period")
    if len(values) < period:
        raise InsufficientDataError("not enough data")

    total = 0.0
    for v in values[len(values) - period:]:
        total += v
    return total / period


def ema(values: Sequence[float], period: int) -> List[float]:
    """
    EMA 完整序列，长度为 len(values) - period + 1
    以前 period 个值的 SMA 作为种子
    """
    if period <= 0:
        raise ValueError("invalid period")
    if len(values) < period:
        raise InsufficientDataError("not enough data")

    k = 2.0 / (period + 1)
    prev = sma(values[:period], period)
    series = [prev]
    for i in range(period, len(values)):
        prev = values[i] * k + prev * (1 - k)
        series.append(prev)
    return series


def ema_value(values: Sequence[float], period: int) -> float:
    return ema(values, period)[-1]


def rsi(closes: Sequence[float], period: int = 14) -> float:
    """Wilder RSI，平均跌幅为 0 时返回 100"""
    if period <= 0:
        raise ValueError("invalid period")
    if len(closes) < period + 1:
        raise InsufficientDataError("not enough data")

    gain = 0.0
    loss = 0.0
    for i in range(1, period + 1):
        delta = closes[i] - closes[i - 1]
        if delta >= 0:
            gain += delta
        else:
            loss -= delta

    avg_gain = gain / period
    avg_loss = loss / period

    for i in range(period + 1, len(closes)):
        delta = closes[i] - closes[i - 1]
        g = 0.0
        l = 0.0
        if delta >= 0:
            g = delta
        else:
            l = -delta
        avg_gain = (avg_gain * (period - 1) + g) / period
        avg_loss = (avg_loss * (period - 1) + l) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def macd(
    closes: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    if fast_period <= 0 or slow_period <= 0 or signal_period <= 0:
        raise ValueError("invalid period")
    if fast_period >= slow_period:
        raise ValueError("fast period must be < slow period")
    if len(closes) < slow_period + signal_period:
        raise InsufficientDataError("not enough data")

    fast_ema = ema(closes, fast_period)
    slow_ema = ema(closes, slow_period)

    # 慢线起点更晚，按尾部对齐
    offset = len(fast_ema) - len(slow_ema)
    macd_series = [fast_ema[i + offset] - slow_ema[i] for i in range(len(slow_ema))]

    signal_series = ema(macd_series, signal_period)
    macd_val = macd_series[-1]
    signal_val = signal_series[-1]

    return MACDResult(
        macd=macd_val,
        signal=signal_val,
        histogram=macd_val - signal_val,
        fast_period=fast_period,
        slow_period=slow_period,
        signal_period=signal_period,
    )


def bollinger_bands(closes: Sequence[float], period: int = 20, std_mult: float = 2.0) -> BollingerBandsResult:
    """中轨为 SMA，标准差为总体标准差（除以 period）"""
    if period <= 0:
        raise ValueError("invalid period")
    if len(closes) < period:
        raise InsufficientDataError("not enough data")

    window = closes[len(closes) - period:]
    mean = sma(closes, period)

    variance = 0.0
    for v in window:
        d = v - mean
        variance += d * d
    variance /= period
    std_dev = math.sqrt(variance)

    return BollingerBandsResult(
        middle=mean,
        upper=mean + std_mult * std_dev,
        lower=mean - std_mult * std_dev,
        std_dev=std_dev,
        period=period,
        std_mult=std_mult,
    )


def pivot_levels(high: float, low: float, close: float) -> PivotLevels:
    """经典枢轴点"""
    pivot = (high + low + close) / 3.0
    return PivotLevels(
        pivot=pivot,
        r1=2 * pivot - low,
        s1=2 * pivot - high,
        r2=pivot + (high - low),
        s2=pivot - (high - low),
    )


def natr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> float:
    """
    归一化 ATR (百分比)
    用于展示指标，数据不足时返回 0 而不是报错
    """
    if len(highs) < period + 1 or len(lows) < period + 1 or len(closes) < period + 1:
        return 0.0

    trs = []
    for i in range(1, len(closes)):
        hl = highs[i] - lows[i]
        hc = abs(highs[i] - closes[i - 1])
        lc = abs(lows[i] - closes[i - 1])
        trs.append(max(hl, max(hc, lc)))

    if len(trs) < period:
        return 0.0

    atr = 0.0
    for i in range(period):
        atr += trs[i]
    atr /= period

    for i in range(period, len(trs)):
        atr = (atr * (period - 1) + trs[i]) / period

    last_close = closes[-1]
    if last_close == 0:
        return 0.0
    return 100 * atr / last_close


def compute_natr14(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> float:
    return natr(highs, lows, closes, 14)


def support_resistance(highs: Sequence[float], lows: Sequence[float], max_lookback: int = 100):
    """最近 min(max_lookback, 可用K线数) 根的最高价 / 最低价"""
    if not highs or not lows:
        raise InsufficientDataError("not enough data")
    lookback = min(max_lookback, len(highs))
    if lookback < 2:
        lookback = len(highs)

    start = len(highs) - lookback
    recent_high = highs[start]
    recent_low = lows[start]
    for i in range(start, len(highs)):
        if highs[i] > recent_high:
            recent_high = highs[i]
        if lows[i] < recent_low:
            recent_low = lows[i]
    return recent_high, recent_low, lookback


# ============================================
# 综合分析
# ============================================

_MA_PERIODS = (9, 21, 50, 200)


def compute_technical_analysis(
    symbol: str,
    interval: str,
    closes: Sequence[float],
    highs: Sequence[float],
    lows: Sequence[float],
    limit: int,
) -> TechnicalAnalysis:
    if len(closes) < 2:
        raise InsufficientDataError("not enough candles")

    rsi_period = 14
    rsi_val = rsi(closes, rsi_period)
    macd_result = macd(closes, 12, 26, 9)
    bb = bollinger_bands(closes, 20, 2.0)

    sma_map: Dict[str, float] = {}
    ema_map: Dict[str, float] = {}
    for p in _MA_PERIODS:
        try:
            sma_map[f"p{p}"] = sma(closes, p)
        except ValueError:
            pass
        try:
            ema_map[f"p{p}"] = ema_value(closes, p)
        except ValueError:
            pass

    recent_high, recent_low, lookback = support_resistance(highs, lows)

    return TechnicalAnalysis(
        symbol=symbol,
        interval=interval,
        limit=limit,
        last_close=closes[-1],
        rsi_value=rsi_val,
        rsi_period=rsi_period,
        macd=macd_result,
        bollinger=bb,
        recent_high=recent_high,
        recent_low=recent_low,
        lookback=lookback,
        pivots=pivot_levels(highs[-1], lows[-1], closes[-1]),
        sma=sma_map,
        ema=ema_map,
    )
