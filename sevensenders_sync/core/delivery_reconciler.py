"""
配達日照合システム - Seven Sendersの状態履歴から配達日をバックフィル
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from ..api.seven_senders_api import SevenSendersAPI
from ..config.options_manager import OptionsManager
from ..database.sqlite_manager import SQLiteManager
from ..services.exceptions import SevenSendersAPIError
from ..services.hooks import HookRegistry
from ..utils.constants import Constants, HookNames, MetaKeys
from ..utils.utils import parse_datetime, safe_get_nested, to_local_naive

logger = logging.getLogger(__name__)


class DeliveryReconciler:
    """配達日照合ジョブ"""

    def __init__(
        self,
        api: SevenSendersAPI,
        db: SQLiteManager,
        options: OptionsManager,
        hooks: Optional[HookRegistry] = None,
        schedule: str = Constants.DEFAULT_RECONCILIATION_SCHEDULE,
        window_days: int = Constants.DEFAULT_RECONCILIATION_WINDOW_DAYS,
        completed_state: str = Constants.DEFAULT_COMPLETED_STATE
    ):
        """
        配達日照合ジョブの初期化

        Args:
            api: Seven Senders APIクライアント
            db: データベース管理
            options: オプション管理
            hooks: フックレジストリ
            schedule: 実行間隔（daily / weekly）
            window_days: 照合対象とする注文作成日の範囲（日）
            completed_state: 配達完了とみなす状態名
        """
        self.api = api
        self.db = db
        self.options = options
        self.hooks = hooks or options.hooks
        self.interval = timedelta(days=Constants.RECONCILIATION_SCHEDULES[schedule])
        self.window = timedelta(days=window_days)
        self.completed_state = completed_state

    def get_last_run(self) -> Optional[datetime]:
        return parse_datetime(self.db.get_setting(Constants.LAST_RECONCILIATION_KEY))

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """前回実行から実行間隔が経過しているかチェック"""
        now = to_local_naive(now or datetime.now())
        last_run = self.get_last_run()
        if last_run is None:
            return True
        return now - to_local_naive(last_run) >= self.interval

    def run_if_due(self, now: Optional[datetime] = None, force: bool = False) -> Dict[str, Any]:
        """
        実行時期の場合のみ照合を実行（cronから毎回呼び出される想定）

        Args:
            now: 基準日時
            force: 実行間隔を無視して実行するか

        Returns:
            実行結果
        """
        if not force and not self.is_due(now):
            logger.debug("配達日照合の実行時期ではありません")
            return {'status': 'not_due', 'checked': 0, 'matched': 0, 'updated': 0}
        return self.run(now)

    def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        配達日照合を実行

        Args:
            now: 基準日時

        Returns:
            実行結果の統計情報 (status, checked, matched, updated)
            status: skipped / no_action / success / error（APIエラー時は実行を記録しない）
        """
        result = {'status': 'skipped', 'checked': 0, 'matched': 0, 'updated': 0}

        if not self.options.settings_exist():
            logger.debug("設定不足のため配達日照合をスキップ")
            return result
        if not self.options.is_delivery_date_tracking_enabled():
            logger.debug("配達日トラッキングが無効のため照合をスキップ")
            return result

        now = to_local_naive(now or datetime.now())
        window_start = now - self.window

        local_orders = self.db.get_orders_missing_meta(
            MetaKeys.DELIVERED_AT,
            required_key=MetaKeys.ORDER_EXPORTED,
            created_after=window_start,
            created_before=now
        )
        result['checked'] = len(local_orders)

        if not local_orders:
            logger.info("配達日未登録の注文はありません")
            result['status'] = 'no_action'
            self._record_run(now)
            return result

        try:
            remote_orders = self.api.get_orders({
                'order_date[after]': window_start.isoformat(),
                'order_date[before]': now.isoformat(),
            }, raise_on_error=True)
        except SevenSendersAPIError as e:
            # 実行記録を残さず、次回のcron実行で再試行する
            logger.error(f"注文一覧の取得に失敗したため配達日照合を中止: {e}")
            result['status'] = 'error'
            return result

        remote_by_number = {
            str(remote['order_id']): remote
            for remote in remote_orders
            if safe_get_nested(remote, 'order_id') is not None
        }

        for order in local_orders:
            remote = remote_by_number.get(str(order['order_number']))
            if remote is None:
                continue
            result['matched'] += 1

            delivered_at = self.find_completed_datetime(safe_get_nested(remote, 'state_history', default=[]))
            if not delivered_at:
                continue

            if self.db.get_meta(order['id'], MetaKeys.DELIVERED_AT):
                logger.debug(f"配達日は既に登録済み: {order['order_number']}")
                continue

            if self.db.update_meta(order['id'], MetaKeys.DELIVERED_AT, delivered_at):
                result['updated'] += 1
                logger.info(f"配達日を登録: {order['order_number']} -> {delivered_at}")
                self.hooks.do_action(HookNames.DELIVERY_DATE_RECORDED, order, delivered_at)

        result['status'] = 'success'
        self._record_run(now)
        logger.info(
            f"配達日照合完了: 対象 {result['checked']}件, 一致 {result['matched']}件, "
            f"更新 {result['updated']}件"
        )
        return result

    def find_completed_datetime(self, state_history: Iterable[Dict[str, Any]]) -> Optional[str]:
        """
        状態履歴から完了状態の最初の日時を取得

        Args:
            state_history: 状態履歴 ({state, datetime} のリスト)

        Returns:
            完了日時の文字列、見つからない場合はNone
        """
        earliest = None
        earliest_value = None
        for entry in state_history:
            if not isinstance(entry, dict) or entry.get('state') != self.completed_state:
                continue
            value = entry.get('datetime')
            parsed = parse_datetime(value)
            if parsed is None:
                continue
            parsed = to_local_naive(parsed)
            if earliest is None or parsed < earliest:
                earliest = parsed
                earliest_value = value
        return earliest_value

    def _record_run(self, now: datetime) -> None:
        self.db.set_setting(
            Constants.LAST_RECONCILIATION_KEY, now.isoformat(), "最終配達日照合日時"
        )
