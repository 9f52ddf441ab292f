"""
プラグインオプション管理 - API接続情報とトラッキングページ設定

オプションは単一のシリアライズ済みレコードとしてデータベースに保存される。
APIアクセスキーはFernetで暗号化して保存し、環境変数の値が保存値より優先される。
"""
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from ..database.sqlite_manager import SQLiteManager
from ..services.exceptions import ConfigurationError
from ..services.hooks import HookRegistry
from ..utils.constants import Constants, ErrorMessages, HookNames, OptionKeys
from ..utils.utils import is_valid_url, mask_secret, normalize_url, to_bool

logger = logging.getLogger(__name__)


# Fernetトークンの識別子
FERNET_PREFIX = 'gAAAAA'

ENV_OVERRIDES = {
    OptionKeys.API_BASE_URL: 'SEVENSENDERS_API_BASE_URL',
    OptionKeys.API_ACCESS_KEY: 'SEVENSENDERS_API_ACCESS_KEY',
    OptionKeys.TRACKING_PAGE_BASE_URL: 'SEVENSENDERS_TRACKING_PAGE_BASE_URL',
    OptionKeys.DELIVERY_DATE_TRACKING_ENABLED: 'SEVENSENDERS_DELIVERY_DATE_TRACKING',
}


class OptionsManager:
    """プラグインオプション管理クラス"""

    def __init__(
        self,
        db: SQLiteManager,
        hooks: Optional[HookRegistry] = None,
        encryption_key: Optional[str] = None,
        key_file: str = Constants.ENCRYPTION_KEY_FILE
    ):
        """
        オプション管理の初期化

        Args:
            db: データベース管理
            hooks: フックレジストリ
            encryption_key: Fernetキー（未指定の場合はキーファイルを使用）
            key_file: 暗号化キーファイルのパス
        """
        self.db = db
        self.hooks = hooks or HookRegistry()
        self.key_file = Path(key_file)
        try:
            self.fernet = Fernet(self._get_or_create_encryption_key(encryption_key))
        except ValueError as e:
            raise ConfigurationError(f"暗号化キーの形式が不正です: {e}")
        self.options_required = list(OptionKeys.REQUIRED)
        self._options: Dict[str, Any] = {}

        self.install()
        self.reload()

    def _get_or_create_encryption_key(self, encryption_key: Optional[str]) -> bytes:
        """暗号化キーを取得または作成"""
        if encryption_key:
            return encryption_key.encode()

        if self.key_file.exists():
            return self.key_file.read_bytes().strip()

        logger.info("新しい暗号化キーを生成中...")
        key = Fernet.generate_key()
        try:
            self.key_file.parent.mkdir(parents=True, exist_ok=True)
            self.key_file.write_bytes(key)
            os.chmod(self.key_file, 0o600)
            logger.info(f"暗号化キーをファイルに保存しました: {self.key_file}")
        except OSError as e:
            logger.error(f"暗号化キー保存エラー: {e}")
        return key

    def install(self) -> None:
        """初回インストール時のデフォルトオプションを登録"""
        if self.db.add_option(OptionKeys.SETTINGS_RECORD, {
            OptionKeys.API_BASE_URL: Constants.DEFAULT_API_BASE_URL,
        }):
            logger.info("デフォルトオプションを登録しました")

    def reload(self) -> None:
        """保存済みオプションと環境変数からオプションを再構築"""
        stored = self.db.get_option(OptionKeys.SETTINGS_RECORD, {}) or {}
        options = dict(stored)

        access_key = options.get(OptionKeys.API_ACCESS_KEY)
        if access_key:
            options[OptionKeys.API_ACCESS_KEY] = self._decrypt(access_key)

        for option, env_name in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                options[option] = value

        for option in (OptionKeys.API_BASE_URL, OptionKeys.TRACKING_PAGE_BASE_URL):
            if options.get(option):
                options[option] = normalize_url(options[option])

        self._options = options

    def _decrypt(self, value: str) -> str:
        if not str(value).startswith(FERNET_PREFIX):
            return value
        try:
            return self.fernet.decrypt(value.encode()).decode()
        except InvalidToken:
            logger.error("APIアクセスキーの復号化に失敗しました（暗号化キーが一致しません）")
            return ''

    def get_option(self, option: str, default: Any = None) -> Any:
        """オプション値を取得"""
        value = self._options.get(option)
        return default if value in (None, '') else value

    def get_options(self) -> Dict[str, Any]:
        return dict(self._options)

    def settings_exist(self, log_missing: bool = True) -> bool:
        """
        必須オプションがすべて設定されているかチェック

        Args:
            log_missing: 不足しているオプションをエラーログに出力するか

        Returns:
            すべて設定済みの場合True
        """
        exist = True
        for option_required in self.options_required:
            if not self._options.get(option_required):
                if log_missing:
                    logger.error(ErrorMessages.SETTINGS_MISSING.format(option_required))
                exist = False
                break

        return self.hooks.apply_filters(HookNames.SETTINGS_EXIST, exist, self)

    def is_delivery_date_tracking_enabled(self) -> bool:
        return to_bool(self._options.get(OptionKeys.DELIVERY_DATE_TRACKING_ENABLED))

    def save_options(
        self,
        api_base_url: str,
        api_access_key: str,
        tracking_page_base_url: str,
        delivery_date_tracking_enabled: bool = False
    ) -> None:
        """
        オプションを検証して保存

        Args:
            api_base_url: APIベースURL
            api_access_key: APIアクセスキー
            tracking_page_base_url: トラッキングページのベースURL
            delivery_date_tracking_enabled: 配達日照合を有効にするか

        Raises:
            ConfigurationError: 入力値が不足・不正な場合
        """
        api_base_url = normalize_url(api_base_url)
        api_access_key = (api_access_key or '').strip()
        tracking_page_base_url = normalize_url(tracking_page_base_url)

        if not api_base_url or not api_access_key or not tracking_page_base_url:
            raise ConfigurationError("必須オプションが入力されていません")
        if not is_valid_url(api_base_url):
            raise ConfigurationError(ErrorMessages.INVALID_URL.format('API Base URL', api_base_url))
        if not is_valid_url(tracking_page_base_url):
            raise ConfigurationError(
                ErrorMessages.INVALID_URL.format('Tracking Page Base URL', tracking_page_base_url)
            )

        record = {
            OptionKeys.API_BASE_URL: api_base_url,
            OptionKeys.API_ACCESS_KEY: self.fernet.encrypt(api_access_key.encode()).decode(),
            OptionKeys.TRACKING_PAGE_BASE_URL: tracking_page_base_url,
            OptionKeys.DELIVERY_DATE_TRACKING_ENABLED: bool(delivery_date_tracking_enabled),
        }
        if not self.db.update_option(OptionKeys.SETTINGS_RECORD, record):
            raise ConfigurationError("オプションの保存に失敗しました")

        logger.info("オプションを保存しました")
        self.reload()

    def get_summary(self) -> Dict[str, Any]:
        """オプションサマリーを取得（機密情報をマスク）"""
        return {
            OptionKeys.API_BASE_URL: self.get_option(OptionKeys.API_BASE_URL, "未設定"),
            OptionKeys.API_ACCESS_KEY: mask_secret(self.get_option(OptionKeys.API_ACCESS_KEY)),
            OptionKeys.TRACKING_PAGE_BASE_URL: self.get_option(OptionKeys.TRACKING_PAGE_BASE_URL, "未設定"),
            OptionKeys.DELIVERY_DATE_TRACKING_ENABLED: self.is_delivery_date_tracking_enabled(),
        }
