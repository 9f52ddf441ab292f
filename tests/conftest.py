"""
共通テストフィクスチャ
"""
import sys
from pathlib import Path

import pytest

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sevensenders_sync.config.options_manager import ENV_OVERRIDES, OptionsManager
from sevensenders_sync.database.sqlite_manager import SQLiteManager
from sevensenders_sync.services.hooks import HookRegistry


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """オプションを上書きする環境変数を除去"""
    for env_name in ENV_OVERRIDES.values():
        monkeypatch.delenv(env_name, raising=False)


@pytest.fixture
def db(tmp_path):
    """テスト用データベース"""
    return SQLiteManager(str(tmp_path / "test.db"))


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def options(db, hooks, tmp_path):
    """必須設定済みのオプション"""
    manager = OptionsManager(db, hooks, key_file=str(tmp_path / ".encryption_key"))
    manager.save_options(
        'https://api.example.com/v2',
        'secret-key',
        'https://shop.example.com/tracking',
        delivery_date_tracking_enabled=True
    )
    return manager


@pytest.fixture
def empty_options(db, hooks, tmp_path):
    """未設定のオプション"""
    return OptionsManager(db, hooks, key_file=str(tmp_path / ".encryption_key"))
