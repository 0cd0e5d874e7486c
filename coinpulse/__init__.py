"""
CoinPulse - 加密货币实时行情推送与分析后端
"""
__version__ = "1.0.0"
