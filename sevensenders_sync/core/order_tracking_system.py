"""
注文トラッキング連携システムメインクラス
"""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from ..api.seven_senders_api import SevenSendersAPI
from ..config.options_manager import OptionsManager
from ..config.simple_config_manager import SimpleConfigManager
from ..database.sqlite_manager import SQLiteManager
from ..services.exceptions import ConfigurationError, DatabaseError
from ..services.hooks import HookRegistry
from ..utils.constants import Constants, ErrorMessages, HookNames, MetaKeys, OptionKeys
from ..utils.utils import setup_logging
from .delivery_reconciler import DeliveryReconciler
from .order_exporter import OrderExporter


logger = logging.getLogger(__name__)


class OrderTrackingSystem:
    """Seven Senders 注文トラッキング連携システム"""

    def __init__(
        self,
        env_file: Optional[str] = '.env',
        verbose: bool = False,
        configure_logging: bool = True
    ):
        """
        連携システムの初期化

        Args:
            env_file: .envファイルパス
            verbose: 詳細ログを出力するか
            configure_logging: ログ出力を設定するか

        Raises:
            ConfigurationError: 設定に問題がある場合
        """
        self.verbose = verbose
        try:
            self.config = SimpleConfigManager(env_file)

            if configure_logging:
                log_level = 'DEBUG' if verbose else self.config.system.log_level
                setup_logging(log_level, self.config.system.log_dir)
            logger.info("=== Seven Senders 注文トラッキング連携システム開始 ===")
            logger.debug(f"設定概要: {self.config.get_config_summary()}")

            self.hooks = HookRegistry()
            self.db = SQLiteManager(self.config.system.database_path)
            self.options = OptionsManager(
                self.db,
                self.hooks,
                encryption_key=self.config.encryption_key or None,
                key_file=str(Path(self.config.system.database_path).parent / Constants.ENCRYPTION_KEY_FILE)
            )

            self._initialize_components()

            logger.info("システム初期化完了")

        except (ConfigurationError, DatabaseError):
            raise
        except Exception as e:
            logger.error(f"システム初期化エラー: {e}")
            raise ConfigurationError(f"システム初期化に失敗しました: {e}")

    def _initialize_components(self) -> None:
        """APIクライアント・エクスポート・照合ジョブを初期化"""
        self.api = SevenSendersAPI(
            base_url=self.options.get_option(OptionKeys.API_BASE_URL, Constants.DEFAULT_API_BASE_URL),
            access_key=self.options.get_option(OptionKeys.API_ACCESS_KEY, ''),
            timeout=self.config.system.api_timeout
        )

        self.exporter = OrderExporter(
            self.api,
            self.db,
            self.options,
            self.hooks,
            shop_timezone=self.config.shop.timezone,
            shop_language=self.config.shop.language
        )

        reconciliation = self.config.reconciliation
        self.reconciler = DeliveryReconciler(
            self.api,
            self.db,
            self.options,
            self.hooks,
            schedule=reconciliation.schedule,
            window_days=reconciliation.window_days,
            completed_state=reconciliation.completed_state
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.api.close_session()

    def configure(
        self,
        api_base_url: str,
        api_access_key: str,
        tracking_page_base_url: str,
        delivery_date_tracking_enabled: bool = False
    ) -> None:
        """オプションを保存し、新しい接続情報でクライアントを再生成"""
        self.options.save_options(
            api_base_url, api_access_key, tracking_page_base_url, delivery_date_tracking_enabled
        )
        self.close()
        self._initialize_components()

    def handle_status_change(self, order_id: int, old_status: Optional[str], new_status: str) -> Dict[str, Any]:
        """
        注文ステータス遷移に応じてエクスポートを実行

        processing: 注文をエクスポート
        completed: 注文（未エクスポートの場合）と出荷をエクスポート

        Args:
            order_id: 注文ID
            old_status: 遷移前のステータス
            new_status: 遷移後のステータス

        Returns:
            実行結果 (order_exported, shipment_exported)
        """
        result: Dict[str, Any] = {'order_exported': None, 'shipment_exported': None}

        self.hooks.do_action(HookNames.ORDER_STATUS_CHANGED, order_id, old_status, new_status)

        if not self.options.settings_exist():
            logger.warning(f"設定不足のため注文 {order_id} のエクスポートを中止しました")
            return result

        if new_status == Constants.ORDER_STATUS_PROCESSING:
            result['order_exported'] = self.exporter.export_order(order_id)
        elif new_status == Constants.ORDER_STATUS_COMPLETED:
            result['order_exported'] = self.exporter.export_order(order_id)
            if result['order_exported']:
                result['shipment_exported'] = self.exporter.export_shipment(order_id)

        return result

    def update_order_status(self, order_id: int, new_status: str) -> Dict[str, Any]:
        """
        注文ステータスを更新し、遷移があればエクスポートを実行

        Args:
            order_id: 注文ID
            new_status: 新しいステータス

        Returns:
            実行結果

        Raises:
            DatabaseError: 注文が存在しない・更新に失敗した場合
        """
        order = self.db.get_order(order_id)
        if not order:
            raise DatabaseError(ErrorMessages.ORDER_NOT_FOUND.format(order_id))

        old_status = order['status']
        if not self.db.update_order_status(order_id, new_status):
            raise DatabaseError(f"注文ステータスの更新に失敗しました: {order_id}")

        logger.info(f"注文ステータス更新: {order['order_number']} {old_status} -> {new_status}")
        if old_status == new_status:
            return {'order_exported': None, 'shipment_exported': None}
        return self.handle_status_change(order_id, old_status, new_status)

    def set_shipping_details(self, order_id: int, carrier: str, tracking_code: str) -> bool:
        """
        配送業者と追跡番号を注文メタデータに保存

        Args:
            order_id: 注文ID
            carrier: 配送業者コード
            tracking_code: 追跡番号

        Returns:
            成功時True
        """
        if not self.db.get_order(order_id):
            logger.error(ErrorMessages.ORDER_NOT_FOUND.format(order_id))
            return False
        return (
            self.db.update_meta(order_id, MetaKeys.SHIPPING_CARRIER, carrier.strip())
            and self.db.update_meta(order_id, MetaKeys.TRACKING_CODE, tracking_code.strip())
        )

    def import_orders(self, records: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        """
        注文レコードをローカルストアに取り込み

        Args:
            records: 注文データのリスト

        Returns:
            取り込み結果 (imported, failed)
        """
        stats = {'imported': 0, 'failed': 0}
        for record in records:
            if not isinstance(record, dict):
                logger.warning(f"注文レコードの形式が不正です: {record!r}")
                stats['failed'] += 1
                continue
            if self.db.save_order(record):
                stats['imported'] += 1
            else:
                stats['failed'] += 1
        logger.info(f"注文取り込み完了: {stats['imported']}件成功, {stats['failed']}件失敗")
        return stats

    def run_reconciliation(self, force: bool = False) -> Dict[str, Any]:
        """配達日照合を実行（実行時期でなければスキップ）"""
        return self.reconciler.run_if_due(force=force)

    def test_connections(self) -> bool:
        """
        設定とAPI接続をテスト

        Returns:
            すべて成功した場合True
        """
        if not self.options.settings_exist():
            logger.error("必須設定が不足しているため接続テストを実行できません")
            return False
        return self.api.test_connection()

    def get_status_summary(self) -> Dict[str, Any]:
        """システム状態のサマリーを取得"""
        last_run = self.reconciler.get_last_run()
        return {
            'options': self.options.get_summary(),
            'settings_exist': self.options.settings_exist(log_missing=False),
            'orders': {
                'total': self.db.count_orders(),
                'exported': self.db.count_orders_with_meta(MetaKeys.ORDER_EXPORTED),
                'shipments_exported': self.db.count_orders_with_meta(MetaKeys.SHIPMENT_EXPORTED),
                'delivered': self.db.count_orders_with_meta(MetaKeys.DELIVERED_AT),
            },
            'reconciliation': {
                'schedule': self.config.reconciliation.schedule,
                'last_run': last_run.isoformat() if last_run else None,
                'due': self.reconciler.is_due(),
            },
        }

    def display_status(self) -> None:
        """システム状態を表示"""
        summary = self.get_status_summary()
        print("=== Seven Senders 注文トラッキング 状態 ===")
        print("[オプション]")
        for key, value in summary['options'].items():
            print(f"  {key}: {value}")
        print(f"  必須設定: {'OK' if summary['settings_exist'] else '不足'}")
        print("[注文]")
        for key, value in summary['orders'].items():
            print(f"  {key}: {value}")
        print("[配達日照合]")
        for key, value in summary['reconciliation'].items():
            print(f"  {key}: {value}")
