"""
SQLiteデータベース管理システム - 注文レコードとメタデータの永続化
"""
import sqlite3
import logging
import json
from typing import Dict, List, Any, Optional
from datetime import datetime
from pathlib import Path
from contextlib import contextmanager

from ..services.exceptions import DatabaseError
from ..utils.utils import parse_datetime, to_bool, to_local_naive

logger = logging.getLogger(__name__)


ORDER_FIELDS = (
    'order_number', 'status', 'needs_processing', 'language', 'customer_email',
    'shipping_first_name', 'shipping_last_name', 'shipping_company',
    'shipping_address_1', 'shipping_address_2', 'shipping_postcode',
    'shipping_city', 'shipping_country', 'billing_phone', 'created_at',
)


class SQLiteManager:
    """SQLiteデータベース管理システム"""

    def __init__(self, db_path: str = "data/order_tracking.db"):
        """
        SQLiteデータベース管理の初期化

        Args:
            db_path: データベースファイルパス
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._initialize_database()

        logger.info(f"SQLiteデータベース管理システム初期化完了: {self.db_path}")

    def _initialize_database(self):
        """データベースとテーブルを初期化"""
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                # 注文テーブル
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS orders (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        order_number TEXT UNIQUE NOT NULL,
                        status TEXT DEFAULT 'pending',
                        needs_processing BOOLEAN DEFAULT 1,
                        language TEXT,
                        customer_email TEXT,
                        shipping_first_name TEXT,
                        shipping_last_name TEXT,
                        shipping_company TEXT,
                        shipping_address_1 TEXT,
                        shipping_address_2 TEXT,
                        shipping_postcode TEXT,
                        shipping_city TEXT,
                        shipping_country TEXT,
                        billing_phone TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                # 注文メタデータテーブル（キー・バリュー）
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS order_meta (
                        order_id INTEGER NOT NULL,
                        meta_key TEXT NOT NULL,
                        meta_value TEXT,  -- JSON value
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        PRIMARY KEY (order_id, meta_key),
                        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE
                    )
                """)

                # オプションテーブル（シリアライズ済みレコード）
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS options (
                        option_name TEXT PRIMARY KEY,
                        option_value TEXT NOT NULL,  -- JSON data
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                # システム設定テーブル
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS system_settings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        description TEXT,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_order_meta_key ON order_meta(meta_key)")

                conn.commit()
                logger.debug("データベーステーブル初期化完了")
        except sqlite3.Error as e:
            raise DatabaseError(f"データベース初期化に失敗しました: {e}")

    @contextmanager
    def get_connection(self):
        """データベース接続コンテキストマネージャー"""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.execute("PRAGMA foreign_keys=ON")
            conn.row_factory = sqlite3.Row
            yield conn
        finally:
            if conn:
                conn.close()

    # ------------------------------------------------------------------
    # 注文
    # ------------------------------------------------------------------

    def save_order(self, order_data: Dict[str, Any]) -> Optional[int]:
        """
        注文を保存（注文番号が既存の場合は更新）

        Args:
            order_data: 注文データ（order_number必須）

        Returns:
            注文ID、失敗時はNone
        """
        order_number = order_data.get('order_number')
        if not order_number:
            logger.error("注文番号のない注文は保存できません")
            return None

        values = {field: order_data.get(field) for field in ORDER_FIELDS}
        values['order_number'] = str(order_number)
        values['needs_processing'] = to_bool(order_data.get('needs_processing', True))

        # 作成日時はローカル時刻（naive）のISO形式に統一して保存（期間検索は文字列比較）
        created_at = values['created_at'] or datetime.now()
        if not isinstance(created_at, datetime):
            created_at = parse_datetime(created_at)
            if created_at is None:
                logger.error(f"作成日時の形式が不正です ({order_number}): {values['created_at']}")
                return None
        values['created_at'] = to_local_naive(created_at).isoformat(timespec='seconds')

        if not values['status']:
            values['status'] = 'pending'

        columns = ', '.join(ORDER_FIELDS)
        placeholders = ', '.join('?' for _ in ORDER_FIELDS)
        updates = ', '.join(f"{field} = excluded.{field}" for field in ORDER_FIELDS if field != 'order_number')

        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(f"""
                    INSERT INTO orders ({columns}) VALUES ({placeholders})
                    ON CONFLICT(order_number) DO UPDATE SET {updates}, updated_at = CURRENT_TIMESTAMP
                """, tuple(values[field] for field in ORDER_FIELDS))
                cursor.execute("SELECT id FROM orders WHERE order_number = ?", (values['order_number'],))
                order_id = cursor.fetchone()['id']
                conn.commit()
                logger.debug(f"注文を保存: {values['order_number']} (ID: {order_id})")
                return order_id
        except sqlite3.Error as e:
            logger.error(f"注文保存エラー ({order_number}): {e}")
            return None

    def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        """注文を取得"""
        try:
            with self.get_connection() as conn:
                row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
                return self._row_to_order(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"注文取得エラー ({order_id}): {e}")
            return None

    def get_order_by_number(self, order_number: str) -> Optional[Dict[str, Any]]:
        """注文番号から注文を取得"""
        try:
            with self.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM orders WHERE order_number = ?", (str(order_number),)
                ).fetchone()
                return self._row_to_order(row) if row else None
        except sqlite3.Error as e:
            logger.error(f"注文取得エラー ({order_number}): {e}")
            return None

    def update_order_status(self, order_id: int, status: str) -> bool:
        """注文ステータスを更新"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (status, order_id)
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"注文ステータス更新エラー ({order_id}): {e}")
            return False

    def get_orders_missing_meta(
        self,
        missing_key: str,
        required_key: Optional[str] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        指定メタデータを持たない注文を取得

        Args:
            missing_key: 存在しないことが条件のメタキー
            required_key: 真値で存在することが条件のメタキー
            created_after: 作成日時の下限
            created_before: 作成日時の上限

        Returns:
            注文のリスト（作成日時順）
        """
        query = """
            SELECT o.* FROM orders o
            WHERE NOT EXISTS (
                SELECT 1 FROM order_meta m
                WHERE m.order_id = o.id AND m.meta_key = ?
                  AND m.meta_value IS NOT NULL AND m.meta_value NOT IN ('null', '""', 'false')
            )
        """
        params: List[Any] = [missing_key]

        if required_key:
            query += """
              AND EXISTS (
                SELECT 1 FROM order_meta r
                WHERE r.order_id = o.id AND r.meta_key = ? AND r.meta_value = 'true'
              )
            """
            params.append(required_key)
        if created_after:
            query += " AND o.created_at >= ?"
            params.append(to_local_naive(created_after).isoformat(timespec='seconds'))
        if created_before:
            query += " AND o.created_at <= ?"
            params.append(to_local_naive(created_before).isoformat(timespec='seconds'))
        query += " ORDER BY o.created_at ASC"

        try:
            with self.get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
                return [self._row_to_order(row) for row in rows]
        except sqlite3.Error as e:
            logger.error(f"注文検索エラー (missing: {missing_key}): {e}")
            return []

    def count_orders_with_meta(self, meta_key: str) -> int:
        """真値のメタデータを持つ注文数を取得"""
        try:
            with self.get_connection() as conn:
                row = conn.execute("""
                    SELECT COUNT(*) FROM order_meta
                    WHERE meta_key = ? AND meta_value IS NOT NULL
                      AND meta_value NOT IN ('null', '""', 'false')
                """, (meta_key,)).fetchone()
                return row[0]
        except sqlite3.Error as e:
            logger.error(f"メタデータ集計エラー ({meta_key}): {e}")
            return 0

    def count_orders(self) -> int:
        """注文数を取得"""
        try:
            with self.get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"注文数取得エラー: {e}")
            return 0

    def _row_to_order(self, row: sqlite3.Row) -> Dict[str, Any]:
        order = dict(row)
        order['needs_processing'] = bool(order.get('needs_processing'))
        return order

    # ------------------------------------------------------------------
    # 注文メタデータ
    # ------------------------------------------------------------------

    def get_meta(self, order_id: int, meta_key: str, default: Any = None) -> Any:
        """注文メタデータを取得"""
        try:
            with self.get_connection() as conn:
                row = conn.execute(
                    "SELECT meta_value FROM order_meta WHERE order_id = ? AND meta_key = ?",
                    (order_id, meta_key)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"メタデータ取得エラー ({order_id}.{meta_key}): {e}")
            return default

        if row is None or row['meta_value'] is None:
            return default
        try:
            return json.loads(row['meta_value'])
        except json.JSONDecodeError:
            return row['meta_value']

    def get_all_meta(self, order_id: int) -> Dict[str, Any]:
        """注文の全メタデータを取得"""
        try:
            with self.get_connection() as conn:
                rows = conn.execute(
                    "SELECT meta_key, meta_value FROM order_meta WHERE order_id = ?", (order_id,)
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"メタデータ取得エラー ({order_id}): {e}")
            return {}

        meta = {}
        for row in rows:
            try:
                meta[row['meta_key']] = json.loads(row['meta_value'])
            except (TypeError, json.JSONDecodeError):
                meta[row['meta_key']] = row['meta_value']
        return meta

    def update_meta(self, order_id: int, meta_key: str, meta_value: Any) -> bool:
        """注文メタデータを保存（既存の場合は上書き）"""
        try:
            with self.get_connection() as conn:
                conn.execute("""
                    INSERT INTO order_meta (order_id, meta_key, meta_value) VALUES (?, ?, ?)
                    ON CONFLICT(order_id, meta_key)
                    DO UPDATE SET meta_value = excluded.meta_value, updated_at = CURRENT_TIMESTAMP
                """, (order_id, meta_key, json.dumps(meta_value, ensure_ascii=False)))
                conn.commit()
                logger.debug(f"メタデータを保存: {order_id}.{meta_key}")
                return True
        except sqlite3.Error as e:
            logger.error(f"メタデータ保存エラー ({order_id}.{meta_key}): {e}")
            return False

    def delete_meta(self, order_id: int, meta_key: str) -> bool:
        """注文メタデータを削除"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM order_meta WHERE order_id = ? AND meta_key = ?", (order_id, meta_key)
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"メタデータ削除エラー ({order_id}.{meta_key}): {e}")
            return False

    # ------------------------------------------------------------------
    # オプション・システム設定
    # ------------------------------------------------------------------

    def get_option(self, option_name: str, default: Any = None) -> Any:
        """シリアライズ済みオプションを取得"""
        try:
            with self.get_connection() as conn:
                row = conn.execute(
                    "SELECT option_value FROM options WHERE option_name = ?", (option_name,)
                ).fetchone()
                return json.loads(row['option_value']) if row else default
        except (sqlite3.Error, json.JSONDecodeError) as e:
            logger.error(f"オプション取得エラー ({option_name}): {e}")
            return default

    def add_option(self, option_name: str, option_value: Any) -> bool:
        """オプションが未登録の場合のみ追加"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO options (option_name, option_value) VALUES (?, ?)",
                    (option_name, json.dumps(option_value, ensure_ascii=False))
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"オプション追加エラー ({option_name}): {e}")
            return False

    def update_option(self, option_name: str, option_value: Any) -> bool:
        """オプションを保存"""
        try:
            with self.get_connection() as conn:
                conn.execute("""
                    INSERT INTO options (option_name, option_value) VALUES (?, ?)
                    ON CONFLICT(option_name)
                    DO UPDATE SET option_value = excluded.option_value, updated_at = CURRENT_TIMESTAMP
                """, (option_name, json.dumps(option_value, ensure_ascii=False)))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"オプション保存エラー ({option_name}): {e}")
            return False

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """システム設定を取得"""
        try:
            with self.get_connection() as conn:
                row = conn.execute("SELECT value FROM system_settings WHERE key = ?", (key,)).fetchone()
                return row['value'] if row else default
        except sqlite3.Error as e:
            logger.error(f"システム設定取得エラー ({key}): {e}")
            return default

    def set_setting(self, key: str, value: str, description: Optional[str] = None) -> bool:
        """システム設定を保存"""
        try:
            with self.get_connection() as conn:
                conn.execute("""
                    INSERT INTO system_settings (key, value, description) VALUES (?, ?, ?)
                    ON CONFLICT(key)
                    DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """, (key, value, description))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"システム設定保存エラー ({key}): {e}")
            return False
