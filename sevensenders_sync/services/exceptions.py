"""
カスタム例外クラス定義
"""
from typing import Optional


class OrderTrackingError(Exception):
    """注文トラッキング連携システムの基底例外クラス"""
    pass


class ConfigurationError(OrderTrackingError):
    """設定関連のエラー"""
    pass


class APIError(OrderTrackingError):
    """API関連のエラー"""
    pass


class SevenSendersAPIError(APIError):
    """Seven Senders API関連のエラー"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(SevenSendersAPIError):
    """トークン取得・再認証に失敗した場合のエラー"""
    pass


class InvalidResponseError(SevenSendersAPIError):
    """レスポンスボディがJSONとして解釈できない場合のエラー"""
    pass


class DataProcessingError(OrderTrackingError):
    """データ処理関連のエラー"""
    pass


class DatabaseError(OrderTrackingError):
    """データベース操作関連のエラー"""
    pass
