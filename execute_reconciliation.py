#!/usr/bin/env python3
"""
配達日照合実行スクリプト - cronから定期実行（毎時など）し、スケジュールに従って照合
"""
import sys
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# .envファイルから環境変数を読み込み
load_dotenv()

# プロジェクトルートをPythonパスに追加
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from sevensenders_sync.core.order_tracking_system import OrderTrackingSystem
from sevensenders_sync.services.exceptions import OrderTrackingError, ConfigurationError

logger = logging.getLogger(__name__)


def parse_arguments():
    """コマンドライン引数を解析"""
    parser = argparse.ArgumentParser(
        description='配達日照合実行システム',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  python execute_reconciliation.py           # 実行時期の場合のみ照合
  python execute_reconciliation.py --force   # スケジュールを無視して照合
        """
    )

    parser.add_argument(
        '--env-file', '-e',
        default='.env',
        help='.envファイルのパス'
    )

    parser.add_argument(
        '--force', '-f',
        action='store_true',
        help='スケジュールを無視して照合を実行'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='詳細ログを出力'
    )

    return parser.parse_args()


def print_result(result):
    """照合結果を表示"""
    status_emoji = {
        'success': '✅',
        'no_action': '📭',
        'not_due': '🕒',
        'skipped': '⏭️',
        'error': '❌',
    }.get(result['status'], '❓')

    print("\n" + "=" * 50)
    print("📊 配達日照合結果")
    print("=" * 50)
    print(f"ステータス: {status_emoji} {result['status']}")
    print(f"対象注文: {result['checked']}件")
    print(f"一致: {result['matched']}件")
    print(f"更新: {result['updated']}件")


def main():
    """メイン処理"""
    try:
        args = parse_arguments()

        with OrderTrackingSystem(env_file=args.env_file, verbose=args.verbose) as system:
            result = system.run_reconciliation(force=args.force)
            print_result(result)
            if result['status'] == 'error':
                sys.exit(1)

        logger.info("配達日照合システム終了")

    except ConfigurationError as e:
        logger.error(f"設定エラー: {e}")
        sys.exit(1)
    except OrderTrackingError as e:
        logger.error(f"システムエラー: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("処理が中断されました")
        sys.exit(130)


if __name__ == "__main__":
    main()
