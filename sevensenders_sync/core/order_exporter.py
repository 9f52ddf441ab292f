"""
注文エクスポートシステム - 注文・出荷データをSeven Sendersへ送信

状態はメタデータで管理する:
未エクスポート → 注文エクスポート済み（トラッキングリンク保存）→ 出荷エクスポート済み
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from ..api.seven_senders_api import SevenSendersAPI
from ..config.options_manager import OptionsManager
from ..database.sqlite_manager import SQLiteManager
from ..services.hooks import HookRegistry
from ..utils.constants import Constants, ErrorMessages, HookNames, MetaKeys, OptionKeys
from ..utils.utils import join_url, next_weekday_at, parse_datetime

logger = logging.getLogger(__name__)


class OrderExporter:
    """注文・出荷エクスポートシステム"""

    def __init__(
        self,
        api: SevenSendersAPI,
        db: SQLiteManager,
        options: OptionsManager,
        hooks: Optional[HookRegistry] = None,
        shop_timezone: str = 'Europe/Berlin',
        shop_language: str = 'de'
    ):
        """
        エクスポートシステムの初期化

        Args:
            api: Seven Senders APIクライアント
            db: データベース管理
            options: オプション管理
            hooks: フックレジストリ
            shop_timezone: ショップのタイムゾーン
            shop_language: 注文に言語がない場合のデフォルト言語
        """
        self.api = api
        self.db = db
        self.options = options
        self.hooks = hooks or options.hooks
        self.shop_timezone = shop_timezone
        self.shop_language = shop_language

    def get_tracking_link(self, order: Dict[str, Any]) -> str:
        """
        顧客向けトラッキングリンクを生成

        Args:
            order: 注文データ

        Returns:
            トラッキングページURL + "/" + 注文番号
        """
        base_url = self.options.get_option(OptionKeys.TRACKING_PAGE_BASE_URL, '')
        link = join_url(base_url, str(order['order_number']))
        return self.hooks.apply_filters(HookNames.TRACKING_LINK, link, order)

    def planned_pickup_datetime(self, now: Optional[datetime] = None) -> datetime:
        """翌営業日の正午（ショップのタイムゾーン）"""
        now = now or datetime.now(ZoneInfo(self.shop_timezone))
        return next_weekday_at(now, Constants.PLANNED_PICKUP_HOUR, self.shop_timezone)

    def is_order_exported(self, order_id: int) -> bool:
        return bool(self.db.get_meta(order_id, MetaKeys.ORDER_EXPORTED, False))

    def is_shipment_exported(self, order_id: int) -> bool:
        return bool(self.db.get_meta(order_id, MetaKeys.SHIPMENT_EXPORTED, False))

    def export_order(self, order_id: int) -> bool:
        """
        注文をエクスポート

        Args:
            order_id: 注文ID

        Returns:
            エクスポート済み（今回または既に）の場合True
        """
        if not self.options.settings_exist(log_missing=False):
            logger.debug(f"設定不足のため注文エクスポートをスキップ: {order_id}")
            return False

        order = self.db.get_order(order_id)
        if not order:
            logger.error(ErrorMessages.ORDER_NOT_FOUND.format(order_id))
            return False

        if not order['needs_processing']:
            logger.debug(f"処理不要な注文のためスキップ: {order['order_number']}")
            return False

        if self.is_order_exported(order_id):
            logger.debug(f"注文は既にエクスポート済み: {order['order_number']}")
            return True

        self.hooks.do_action(HookNames.BEFORE_EXPORT_ORDER, order)

        tracking_link = self.get_tracking_link(order)
        order_data = self.hooks.apply_filters(
            HookNames.ORDER_DATA, self._build_order_data(order, tracking_link), order
        )

        if not self.api.create_order(order_data):
            logger.error(f"注文エクスポート失敗: {order['order_number']}")
            return False

        self.db.update_meta(order_id, MetaKeys.ORDER_EXPORTED, True)
        self.db.update_meta(order_id, MetaKeys.TRACKING_LINK, tracking_link)
        logger.info(f"注文エクスポート完了: {order['order_number']} ({tracking_link})")

        self.hooks.do_action(HookNames.ORDER_EXPORTED, order, tracking_link)

        if not self.api.set_order_state(order['order_number'], Constants.STATE_IN_PREPARATION):
            logger.warning(f"注文状態の設定に失敗: {order['order_number']}")

        return True

    def _build_order_data(self, order: Dict[str, Any], tracking_link: str) -> Dict[str, Any]:
        """注文送信データを構築"""
        created_at = parse_datetime(order.get('created_at')) or datetime.now()
        return {
            'order_id': str(order['order_number']),
            'order_url': tracking_link,
            'order_date': created_at.isoformat(),
            'delivered_with_seven_senders': True,
            'boarding_complete': True,
            'language': (order.get('language') or self.shop_language)[:2],
        }

    def export_shipment(self, order_id: int, now: Optional[datetime] = None) -> bool:
        """
        出荷をエクスポート

        Args:
            order_id: 注文ID
            now: 出荷予定日時計算の基準日時

        Returns:
            エクスポート済み（今回または既に）の場合True
        """
        if not self.options.settings_exist(log_missing=False):
            logger.debug(f"設定不足のため出荷エクスポートをスキップ: {order_id}")
            return False

        order = self.db.get_order(order_id)
        if not order:
            logger.error(ErrorMessages.ORDER_NOT_FOUND.format(order_id))
            return False

        if not self.is_order_exported(order_id):
            logger.error(f"注文が未エクスポートのため出荷をエクスポートできません: {order['order_number']}")
            return False

        if self.is_shipment_exported(order_id):
            logger.debug(f"出荷は既にエクスポート済み: {order['order_number']}")
            return True

        carrier = self.db.get_meta(order_id, MetaKeys.SHIPPING_CARRIER)
        country = (order.get('shipping_country') or '').upper()
        if not self.api.is_carrier_valid(carrier, country):
            logger.error(f"無効な配送業者です: {carrier} ({country}) 注文 {order['order_number']}")
            return False

        tracking_code = self.db.get_meta(order_id, MetaKeys.TRACKING_CODE)
        if not tracking_code or not str(tracking_code).strip():
            logger.error(f"追跡番号がありません: 注文 {order['order_number']}")
            return False

        self.hooks.do_action(HookNames.BEFORE_EXPORT_SHIPMENT, order)

        shipment_data = self.hooks.apply_filters(
            HookNames.SHIPMENT_DATA,
            self._build_shipment_data(order, carrier, str(tracking_code).strip(), country, now),
            order
        )

        if not self.api.create_shipment(shipment_data):
            logger.error(f"出荷エクスポート失敗: {order['order_number']}")
            return False

        self.db.update_meta(order_id, MetaKeys.SHIPMENT_EXPORTED, True)
        logger.info(f"出荷エクスポート完了: {order['order_number']} ({carrier} {tracking_code})")

        self.hooks.do_action(HookNames.SHIPMENT_EXPORTED, order, shipment_data)
        return True

    def _build_shipment_data(
        self,
        order: Dict[str, Any],
        carrier: str,
        tracking_code: str,
        country: str,
        now: Optional[datetime]
    ) -> Dict[str, Any]:
        """出荷送信データを構築"""
        address = ' '.join(
            part for part in (order.get('shipping_address_1'), order.get('shipping_address_2')) if part
        )
        return {
            'order_id': str(order['order_number']),
            'tracking_code': tracking_code,
            'carrier': {
                'name': carrier,
                'country': country,
            },
            'recipient_first_name': order.get('shipping_first_name') or '',
            'recipient_last_name': order.get('shipping_last_name') or '',
            'recipient_company_name': order.get('shipping_company') or '',
            'recipient_email': order.get('customer_email') or '',
            'recipient_phone': order.get('billing_phone') or '',
            'recipient_address': address,
            'recipient_zip': order.get('shipping_postcode') or '',
            'recipient_city': order.get('shipping_city') or '',
            'recipient_country': country,
            'planned_pickup_datetime': self.planned_pickup_datetime(now).isoformat(),
        }
