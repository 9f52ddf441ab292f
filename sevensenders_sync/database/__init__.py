"""
データベース管理モジュール
"""

from .sqlite_manager import SQLiteManager

__all__ = ['SQLiteManager']
