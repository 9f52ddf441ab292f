"""
定数定義モジュール
"""
from typing import Final


class Constants:
    """システム定数定義"""
    
    # API関連
    API_TIMEOUT: Final[int] = 30
    MAX_AUTH_ATTEMPTS: Final[int] = 5
    CARRIER_CACHE_TTL_HOURS: Final[int] = 24
    DEFAULT_API_BASE_URL: Final[str] = 'https://api.sevensenders.com/v2'
    
    # APIエンドポイント
    ENDPOINT_TOKEN: Final[str] = 'token'
    ENDPOINT_ORDERS: Final[str] = 'orders'
    ENDPOINT_ORDER_STATES: Final[str] = 'order_states'
    ENDPOINT_CARRIERS: Final[str] = 'carriers'
    ENDPOINT_SHIPMENTS: Final[str] = 'shipments'
    
    # 注文状態
    STATE_IN_PREPARATION: Final[str] = 'in_preparation'
    DEFAULT_COMPLETED_STATE: Final[str] = 'delivered'
    
    # ショップ側の注文ステータス
    ORDER_STATUS_PROCESSING: Final[str] = 'processing'
    ORDER_STATUS_COMPLETED: Final[str] = 'completed'
    
    # 出荷予定
    PLANNED_PICKUP_HOUR: Final[int] = 12
    
    # 照合ジョブ
    RECONCILIATION_SCHEDULES: Final[dict] = {'daily': 1, 'weekly': 7}
    DEFAULT_RECONCILIATION_SCHEDULE: Final[str] = 'daily'
    DEFAULT_RECONCILIATION_WINDOW_DAYS: Final[int] = 30
    LAST_RECONCILIATION_KEY: Final[str] = 'last_reconciliation_at'
    
    # ファイルパス
    DATABASE_PATH: Final[str] = 'data/order_tracking.db'
    ENCRYPTION_KEY_FILE: Final[str] = '.encryption_key'
    
    # ログ関連
    LOG_DATE_FORMAT: Final[str] = '%Y%m%d'
    LOG_FORMAT: Final[str] = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class MetaKeys:
    """注文メタデータのキー"""
    
    ORDER_EXPORTED = 'wcssot_order_exported'
    TRACKING_LINK = 'wcssot_order_tracking_link'
    SHIPMENT_EXPORTED = 'wcssot_shipment_exported'
    SHIPPING_CARRIER = 'wcssot_shipping_carrier'
    TRACKING_CODE = 'wcssot_shipping_tracking_code'
    DELIVERED_AT = 'wcssot_order_delivered_at'


class OptionKeys:
    """プラグインオプションのキー"""
    
    SETTINGS_RECORD = 'wcssot_settings'
    API_BASE_URL = 'wcssot_api_base_url'
    API_ACCESS_KEY = 'wcssot_api_access_key'
    TRACKING_PAGE_BASE_URL = 'wcssot_tracking_page_base_url'
    DELIVERY_DATE_TRACKING_ENABLED = 'wcssot_delivery_date_tracking_enabled'
    
    REQUIRED = (API_BASE_URL, API_ACCESS_KEY, TRACKING_PAGE_BASE_URL)


class HookNames:
    """フック名定義"""
    
    ORDER_STATUS_CHANGED = 'order_status_changed'
    BEFORE_EXPORT_ORDER = 'before_export_order'
    ORDER_EXPORTED = 'order_exported'
    BEFORE_EXPORT_SHIPMENT = 'before_export_shipment'
    SHIPMENT_EXPORTED = 'shipment_exported'
    DELIVERY_DATE_RECORDED = 'delivery_date_recorded'
    
    # フィルター
    TRACKING_LINK = 'tracking_link'
    ORDER_DATA = 'order_data'
    SHIPMENT_DATA = 'shipment_data'
    SETTINGS_EXIST = 'settings_exist'


class ErrorMessages:
    """エラーメッセージ定数"""
    
    SETTINGS_MISSING = "必須設定が不足しています: {}"
    ORDER_NOT_FOUND = "注文が見つかりません: {}"
    INVALID_URL = "無効なURLです ({}): {}"
    INVALID_SCHEDULE = "無効な照合スケジュールです: {}"
