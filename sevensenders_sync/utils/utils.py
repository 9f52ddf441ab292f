"""
共通ユーティリティ関数
"""
import logging
import sys
import os
from datetime import datetime, timedelta, time as dt_time
from typing import Any, Optional
from urllib.parse import urlparse
from zoneinfo import ZoneInfo


def safe_get_nested(data: Any, *keys, default=None) -> Any:
    """
    APIレスポンスのネストされた値を安全に取得

    途中の値が辞書でない場合やキーが存在しない場合、値がNoneの場合はデフォルト値を返す。

    Args:
        data: レスポンスデータ（辞書以外も可）
        *keys: アクセスするキーのパス
        default: デフォルト値

    Returns:
        取得した値またはデフォルト値
    """
    for key in keys:
        if not isinstance(data, dict) or data.get(key) is None:
            return default
        data = data[key]
    return data


def setup_logging(log_level: str = 'INFO', log_dir: str = 'logs') -> logging.Logger:
    """
    ログ設定のセットアップ

    Args:
        log_level: ログレベル
        log_dir: ログディレクトリ

    Returns:
        設定済みのロガー
    """
    from .constants import Constants

    # ログディレクトリの作成
    os.makedirs(log_dir, exist_ok=True)

    # ログファイル名（日付付き）
    log_file = os.path.join(log_dir, f'order_tracking_{datetime.now().strftime(Constants.LOG_DATE_FORMAT)}.log')

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=Constants.LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def join_url(base_url: str, path: str) -> str:
    """
    ベースURLとパスを単一のスラッシュで連結

    Args:
        base_url: ベースURL（末尾スラッシュの有無は問わない）
        path: 連結するパス

    Returns:
        連結されたURL
    """
    return f"{base_url.rstrip('/')}/{str(path).lstrip('/')}"


def normalize_url(url: Optional[str]) -> str:
    """前後の空白と末尾スラッシュを除去"""
    if not url:
        return ""
    return url.strip().rstrip('/')


def is_valid_url(url: Optional[str]) -> bool:
    """
    http(s) スキームとホストを持つURLかチェック

    Args:
        url: チェック対象のURL

    Returns:
        有効な場合True
    """
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def mask_secret(value: Optional[str]) -> str:
    """機密情報をマスク（末尾4文字のみ表示）"""
    if not value:
        return "未設定"
    masked = '*' * min(len(str(value)), 8)
    if len(str(value)) > 4:
        masked += str(value)[-4:]
    return masked


def next_weekday_at(now: datetime, hour: int, timezone: str) -> datetime:
    """
    翌営業日（月〜金）の指定時刻を取得

    Args:
        now: 基準日時（naiveの場合はtimezoneの現地時刻とみなす）
        hour: 時刻（時）
        timezone: ショップのタイムゾーン名

    Returns:
        タイムゾーン付きの日時
    """
    tz = ZoneInfo(timezone)
    if now.tzinfo is None:
        local_now = now.replace(tzinfo=tz)
    else:
        local_now = now.astimezone(tz)

    candidate = local_now.date() + timedelta(days=1)
    # 土日はスキップ
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)

    return datetime.combine(candidate, dt_time(hour=hour), tzinfo=tz)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601文字列をdatetimeに変換（失敗時はNone）"""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


def to_local_naive(value: datetime) -> datetime:
    """タイムゾーン付き日時をサーバーのローカル時刻（naive）に変換"""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def to_bool(value: Any) -> bool:
    """設定値を真偽値に変換"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
