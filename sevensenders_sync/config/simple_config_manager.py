"""
簡素化設定管理システム - 環境変数（.env）からシステム設定を構築
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from ..services.exceptions import ConfigurationError
from ..utils.constants import Constants, ErrorMessages
from ..utils.utils import mask_secret

logger = logging.getLogger(__name__)


@dataclass
class SystemConfig:
    """システム設定"""
    log_level: str
    log_dir: str
    database_path: str
    api_timeout: int


@dataclass
class ShopConfig:
    """ショップ設定"""
    timezone: str
    language: str


@dataclass
class ReconciliationConfig:
    """配達日照合ジョブ設定"""
    schedule: str
    window_days: int
    completed_state: str

    @property
    def interval_days(self) -> int:
        return Constants.RECONCILIATION_SCHEDULES[self.schedule]


class SimpleConfigManager:
    """簡素化設定管理システム - .env直接読み込み"""

    def __init__(self, env_file: Optional[str] = ".env"):
        """
        簡素化設定管理の初期化

        Args:
            env_file: .envファイルパス（Noneの場合は読み込まない）

        Raises:
            ConfigurationError: 設定値が不正な場合
        """
        self.env_file = env_file
        self._config_data: Dict[str, Dict[str, Any]] = {}
        self._load_env_file()
        self._setup_configuration()
        self._validate()

        logger.debug("簡素化設定管理システム初期化完了")

    def _load_env_file(self):
        """.envファイルを読み込み（既存の環境変数は上書きしない）"""
        if not self.env_file:
            return
        if not Path(self.env_file).exists():
            logger.debug(f".envファイルが見つかりません: {self.env_file}")
            return
        load_dotenv(self.env_file, override=False)
        logger.debug(f".envファイル読み込み完了: {self.env_file}")

    def _setup_configuration(self):
        """環境変数から設定を構築"""
        try:
            self._config_data['system'] = {
                'log_level': os.getenv('LOG_LEVEL', 'INFO'),
                'log_dir': os.getenv('LOG_DIR', 'logs'),
                'database_path': os.getenv('DATABASE_PATH', Constants.DATABASE_PATH),
                'api_timeout': int(os.getenv('API_TIMEOUT', str(Constants.API_TIMEOUT))),
                'encryption_key': os.getenv('ENCRYPTION_KEY', ''),
            }

            self._config_data['shop'] = {
                'timezone': os.getenv('SHOP_TIMEZONE', 'Europe/Berlin'),
                'language': os.getenv('SHOP_LANGUAGE', 'de'),
            }

            self._config_data['reconciliation'] = {
                'schedule': os.getenv('RECONCILIATION_SCHEDULE', Constants.DEFAULT_RECONCILIATION_SCHEDULE).lower(),
                'window_days': int(os.getenv(
                    'RECONCILIATION_WINDOW_DAYS', str(Constants.DEFAULT_RECONCILIATION_WINDOW_DAYS)
                )),
                'completed_state': os.getenv('COMPLETED_STATE', Constants.DEFAULT_COMPLETED_STATE),
            }
        except ValueError as e:
            raise ConfigurationError(f"数値設定の形式が不正です: {e}")

    def _validate(self):
        """設定値の検証"""
        schedule = self.get('reconciliation', 'schedule')
        if schedule not in Constants.RECONCILIATION_SCHEDULES:
            raise ConfigurationError(ErrorMessages.INVALID_SCHEDULE.format(schedule))

        timezone = self.get('shop', 'timezone')
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigurationError(f"無効なタイムゾーンです: {timezone}")

        if self.get('reconciliation', 'window_days') <= 0:
            raise ConfigurationError("RECONCILIATION_WINDOW_DAYS は1以上である必要があります")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """設定値を取得"""
        return self._config_data.get(section, {}).get(key, default)

    def get_config_summary(self) -> Dict[str, Any]:
        """設定サマリーを取得（機密情報をマスク）"""
        summary = {}

        for section, config in self._config_data.items():
            summary[section] = {}
            for key, value in config.items():
                if any(sensitive in key.lower() for sensitive in ['password', 'key', 'secret', 'token']):
                    summary[section][key] = mask_secret(value)
                else:
                    summary[section][key] = value

        return summary

    @property
    def encryption_key(self) -> str:
        return self.get('system', 'encryption_key')

    @property
    def system(self) -> SystemConfig:
        """システム設定を取得"""
        return SystemConfig(
            log_level=self.get('system', 'log_level'),
            log_dir=self.get('system', 'log_dir'),
            database_path=self.get('system', 'database_path'),
            api_timeout=self.get('system', 'api_timeout'),
        )

    @property
    def shop(self) -> ShopConfig:
        """ショップ設定を取得"""
        return ShopConfig(
            timezone=self.get('shop', 'timezone'),
            language=self.get('shop', 'language'),
        )

    @property
    def reconciliation(self) -> ReconciliationConfig:
        """照合ジョブ設定を取得"""
        return ReconciliationConfig(
            schedule=self.get('reconciliation', 'schedule'),
            window_days=self.get('reconciliation', 'window_days'),
            completed_state=self.get('reconciliation', 'completed_state'),
        )
