#!/usr/bin/env python3
"""
Seven Senders 注文トラッキング連携 メインスクリプト
"""
import sys
import json
import argparse
from pathlib import Path
from dotenv import load_dotenv

# .envファイルから環境変数を読み込み
load_dotenv()

# プロジェクトルートをPythonパスに追加
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from sevensenders_sync.core.order_tracking_system import OrderTrackingSystem
from sevensenders_sync.services.exceptions import OrderTrackingError, ConfigurationError, DataProcessingError


def parse_arguments():
    """コマンドライン引数を解析"""
    parser = argparse.ArgumentParser(
        description='Seven Senders 注文トラッキング連携',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  python main.py --status                             # システム状態表示
  python main.py --test-connections                   # API接続テスト
  python main.py --configure URL KEY TRACKING_URL     # オプションを保存
  python main.py --import-orders orders.json          # 注文レコードを取り込み
  python main.py --set-status 12 processing           # ステータス更新（注文エクスポート）
  python main.py --set-shipping 12 dhl 00340434       # 配送業者・追跡番号を保存
  python main.py --export-order 12                    # 注文を手動エクスポート
  python main.py --export-shipment 12                 # 出荷を手動エクスポート
        """
    )

    parser.add_argument(
        '--env-file', '-e',
        default='.env',
        help='.envファイルのパス (デフォルト: .env)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='詳細ログを出力'
    )

    group = parser.add_mutually_exclusive_group(required=True)

    group.add_argument(
        '--status', '-s',
        action='store_true',
        help='システム状態を表示'
    )

    group.add_argument(
        '--test-connections', '-t',
        action='store_true',
        help='API接続テストのみ実行'
    )

    group.add_argument(
        '--configure',
        nargs=3,
        metavar=('API_BASE_URL', 'API_ACCESS_KEY', 'TRACKING_PAGE_BASE_URL'),
        help='API接続情報とトラッキングページURLを保存'
    )

    group.add_argument(
        '--import-orders',
        metavar='FILE',
        help='注文レコード（JSON配列）を取り込み'
    )

    group.add_argument(
        '--set-status',
        nargs=2,
        metavar=('ORDER_ID', 'STATUS'),
        help='注文ステータスを更新し、遷移に応じてエクスポート'
    )

    group.add_argument(
        '--set-shipping',
        nargs=3,
        metavar=('ORDER_ID', 'CARRIER', 'TRACKING_CODE'),
        help='配送業者と追跡番号を保存'
    )

    group.add_argument(
        '--export-order',
        type=int,
        metavar='ORDER_ID',
        help='注文をエクスポート'
    )

    group.add_argument(
        '--export-shipment',
        type=int,
        metavar='ORDER_ID',
        help='出荷をエクスポート'
    )

    parser.add_argument(
        '--enable-delivery-tracking',
        action='store_true',
        help='--configure と併用: 配達日照合を有効化'
    )

    return parser.parse_args()


def main():
    """メイン処理"""
    try:
        args = parse_arguments()

        with OrderTrackingSystem(env_file=args.env_file, verbose=args.verbose) as system:
            if args.status:
                system.display_status()
                sys.exit(0)

            elif args.test_connections:
                success = system.test_connections()
                print("✅ 接続成功" if success else "❌ 接続失敗")
                sys.exit(0 if success else 1)

            elif args.configure:
                api_base_url, api_access_key, tracking_page_base_url = args.configure
                system.configure(
                    api_base_url,
                    api_access_key,
                    tracking_page_base_url,
                    delivery_date_tracking_enabled=args.enable_delivery_tracking
                )
                print("✅ オプションを保存しました")
                sys.exit(0)

            elif args.import_orders:
                with open(args.import_orders, 'r', encoding='utf-8') as f:
                    records = json.load(f)
                if not isinstance(records, list):
                    raise DataProcessingError("注文ファイルはJSON配列である必要があります")
                stats = system.import_orders(records)
                print(f"📥 取り込み: {stats['imported']}件成功, {stats['failed']}件失敗")
                sys.exit(0 if stats['failed'] == 0 else 1)

            elif args.set_status:
                order_id, status = args.set_status
                result = system.update_order_status(int(order_id), status)
                print(f"🔄 ステータス更新: {order_id} -> {status} {result}")
                failed = any(value is False for value in result.values())
                sys.exit(1 if failed else 0)

            elif args.set_shipping:
                order_id, carrier, tracking_code = args.set_shipping
                success = system.set_shipping_details(int(order_id), carrier, tracking_code)
                print("✅ 配送情報を保存しました" if success else "❌ 配送情報の保存に失敗しました")
                sys.exit(0 if success else 1)

            elif args.export_order is not None:
                success = system.exporter.export_order(args.export_order)
                print("✅ 注文エクスポート完了" if success else "❌ 注文エクスポート失敗")
                sys.exit(0 if success else 1)

            elif args.export_shipment is not None:
                success = system.exporter.export_shipment(args.export_shipment)
                print("✅ 出荷エクスポート完了" if success else "❌ 出荷エクスポート失敗")
                sys.exit(0 if success else 1)

    except ConfigurationError as e:
        print(f"設定エラー: {e}", file=sys.stderr)
        sys.exit(1)
    except OrderTrackingError as e:
        print(f"システムエラー: {e}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"入力エラー: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n処理が中断されました", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
