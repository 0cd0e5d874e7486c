# 数据库模块
from .connection import DatabaseManager
from .schema import ensure_schema

__all__ = [
    'DatabaseManager',
    'ensure_schema',
]
