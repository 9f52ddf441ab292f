#!/usr/bin/env python3
"""
SQLiteデータベース管理のテストモジュール
"""
import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sevensenders_sync.database.sqlite_manager import SQLiteManager


class TestSQLiteManager:
    """SQLiteデータベース管理のテストクラス"""

    def test_creates_database_directory(self, tmp_path):
        """データベースディレクトリの自動作成テスト"""
        db_path = tmp_path / 'nested' / 'orders.db'
        SQLiteManager(str(db_path))
        assert db_path.exists()

    def test_save_and_get_order(self, db):
        """注文の保存と取得テスト"""
        order_id = db.save_order({
            'order_number': 1001,
            'shipping_city': 'Berlin',
            'created_at': datetime(2024, 3, 1, 9, 30, 15, 123456),
        })

        order = db.get_order(order_id)
        assert order['order_number'] == '1001'
        assert order['status'] == 'pending'
        assert order['needs_processing'] is True
        assert order['shipping_city'] == 'Berlin'
        assert order['created_at'] == '2024-03-01T09:30:15'
        assert db.get_order_by_number('1001')['id'] == order_id

    def test_save_order_upserts_by_number(self, db):
        """同一注文番号の保存は更新になるテスト"""
        first = db.save_order({'order_number': '1001', 'shipping_city': 'Berlin'})
        second = db.save_order({'order_number': '1001', 'shipping_city': 'Hamburg'})

        assert first == second
        assert db.count_orders() == 1
        assert db.get_order(first)['shipping_city'] == 'Hamburg'

    def test_save_order_without_number(self, db):
        assert db.save_order({'shipping_city': 'Berlin'}) is None
        assert db.count_orders() == 0

    def test_created_at_normalized_to_local_time(self, db):
        """作成日時をローカル時刻の統一形式で保存し、期間検索が時点として比較されるテスト"""
        def local(value):
            return value.astimezone().replace(tzinfo=None).isoformat(timespec='seconds')

        # 18:30Z / 21:00Z / 10:00Z
        inside = db.save_order({'order_number': '1', 'created_at': '2026-10-18T23:30:00+05:00'})
        outside = db.save_order({'order_number': '2', 'created_at': '2026-10-19T02:00:00+05:00'})
        zulu = db.save_order({'order_number': '3', 'created_at': '2026-10-18T10:00:00Z'})
        spaced = db.save_order({'order_number': '4', 'created_at': '2026-10-18 09:15:00'})

        assert db.get_order(inside)['created_at'] == local(datetime(2026, 10, 18, 18, 30, tzinfo=timezone.utc))
        assert db.get_order(outside)['created_at'] == local(datetime(2026, 10, 18, 21, 0, tzinfo=timezone.utc))
        assert db.get_order(zulu)['created_at'] == local(datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc))
        assert db.get_order(spaced)['created_at'] == '2026-10-18T09:15:00'

        window_end = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)
        orders = db.get_orders_missing_meta(
            'delivered_at',
            created_after=window_end - timedelta(days=30),
            created_before=window_end
        )
        numbers = [order['order_number'] for order in orders]
        assert '1' in numbers
        assert '3' in numbers
        assert '2' not in numbers

    def test_save_order_with_invalid_created_at(self, db):
        assert db.save_order({'order_number': '1', 'created_at': 'yesterday'}) is None
        assert db.count_orders() == 0

    @pytest.mark.parametrize('value, expected', [
        ('false', False),
        ('0', False),
        (0, False),
        (False, False),
        ('true', True),
        (1, True),
    ])
    def test_save_order_needs_processing_flag(self, db, value, expected):
        """処理要否フラグの文字列・数値表現のテスト"""
        order_id = db.save_order({'order_number': '1', 'needs_processing': value})
        assert db.get_order(order_id)['needs_processing'] is expected

    def test_unknown_order(self, db):
        assert db.get_order(42) is None
        assert db.get_order_by_number('missing') is None
        assert db.update_order_status(42, 'processing') is False

    def test_update_order_status(self, db):
        order_id = db.save_order({'order_number': '1001'})

        assert db.update_order_status(order_id, 'completed') is True
        assert db.get_order(order_id)['status'] == 'completed'

    def test_meta_round_trip(self, db):
        """メタデータの型保持テスト"""
        order_id = db.save_order({'order_number': '1001'})

        db.update_meta(order_id, 'flag', True)
        db.update_meta(order_id, 'code', '00340434')
        db.update_meta(order_id, 'payload', {'carrier': 'dhl'})
        db.update_meta(order_id, 'flag', False)

        assert db.get_meta(order_id, 'flag') is False
        assert db.get_meta(order_id, 'code') == '00340434'
        assert db.get_meta(order_id, 'missing', 'default') == 'default'
        assert db.get_all_meta(order_id) == {'flag': False, 'code': '00340434', 'payload': {'carrier': 'dhl'}}

        assert db.delete_meta(order_id, 'code') is True
        assert db.delete_meta(order_id, 'code') is False
        assert db.get_meta(order_id, 'code') is None

    def test_get_orders_missing_meta(self, db):
        """メタデータ未登録の注文検索テスト"""
        exported = db.save_order({'order_number': '1', 'created_at': '2024-03-10T00:00:00'})
        db.update_meta(exported, 'exported', True)

        delivered = db.save_order({'order_number': '2', 'created_at': '2024-03-11T00:00:00'})
        db.update_meta(delivered, 'exported', True)
        db.update_meta(delivered, 'delivered_at', '2024-03-12T00:00:00Z')

        cleared = db.save_order({'order_number': '3', 'created_at': '2024-03-12T00:00:00'})
        db.update_meta(cleared, 'exported', True)
        db.update_meta(cleared, 'delivered_at', '')

        not_exported = db.save_order({'order_number': '4', 'created_at': '2024-03-13T00:00:00'})
        db.update_meta(not_exported, 'exported', False)

        old = db.save_order({'order_number': '5', 'created_at': '2024-01-01T00:00:00'})
        db.update_meta(old, 'exported', True)

        orders = db.get_orders_missing_meta(
            'delivered_at',
            required_key='exported',
            created_after=datetime(2024, 3, 1),
            created_before=datetime(2024, 3, 31)
        )

        assert [order['order_number'] for order in orders] == ['1', '3']
        assert len(db.get_orders_missing_meta('delivered_at')) == 4

    def test_count_orders_with_meta(self, db):
        first = db.save_order({'order_number': '1'})
        second = db.save_order({'order_number': '2'})
        db.update_meta(first, 'exported', True)
        db.update_meta(second, 'exported', False)

        assert db.count_orders_with_meta('exported') == 1
        assert db.count_orders_with_meta('unknown') == 0

    def test_options(self, db):
        """オプションの追加と更新テスト"""
        assert db.get_option('settings', {}) == {}
        assert db.add_option('settings', {'a': 1}) is True
        assert db.add_option('settings', {'a': 2}) is False
        assert db.get_option('settings') == {'a': 1}

        assert db.update_option('settings', {'a': 3}) is True
        assert db.get_option('settings') == {'a': 3}

    def test_system_settings(self, db):
        assert db.get_setting('last_run') is None
        assert db.set_setting('last_run', '2024-03-20T12:00:00', '最終実行日時') is True
        assert db.set_setting('last_run', '2024-03-21T12:00:00') is True
        assert db.get_setting('last_run') == '2024-03-21T12:00:00'


if __name__ == '__main__':
    pytest.main([__file__])
