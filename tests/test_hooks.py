#!/usr/bin/env python3
"""
フック管理システムのテストモジュール
"""
import pytest
import sys
from pathlib import Path

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sevensenders_sync.services.hooks import HookRegistry


def test_actions_run_in_priority_then_registration_order(hooks):
    """アクションの実行順序テスト"""
    calls = []
    hooks.add_action('event', lambda value: calls.append(('late', value)), priority=20)
    hooks.add_action('event', lambda value: calls.append(('first', value)))
    hooks.add_action('event', lambda value: calls.append(('second', value)))
    hooks.add_action('event', lambda value: calls.append(('early', value)), priority=1)

    hooks.do_action('event', 7)

    assert calls == [('early', 7), ('first', 7), ('second', 7), ('late', 7)]


def test_filters_chain_values(hooks):
    """フィルターの連鎖テスト"""
    hooks.add_filter('price', lambda value, rate: value * rate)
    hooks.add_filter('price', lambda value, rate: value + 1, priority=5)

    assert hooks.apply_filters('price', 10, 2) == 22


def test_unregistered_hooks(hooks):
    """未登録フックのテスト"""
    hooks.do_action('nothing')
    assert hooks.apply_filters('nothing', 'value') == 'value'
    assert hooks.has_action('nothing') is False
    assert hooks.has_filter('nothing') is False


def test_remove_hooks(hooks):
    """フックの削除テスト"""
    def double(value):
        return value * 2

    hooks.add_filter('value', double)
    assert hooks.has_filter('value') is True

    assert hooks.remove_filter('value', double) is True
    assert hooks.remove_filter('value', double) is False
    assert hooks.apply_filters('value', 3) == 3


def test_callback_exceptions_propagate(hooks):
    """コールバックの例外は呼び出し元に伝播するテスト"""
    def broken(*args):
        raise RuntimeError("boom")

    hooks.add_action('event', broken)

    with pytest.raises(RuntimeError):
        hooks.do_action('event')


def test_non_callable_rejected():
    registry = HookRegistry()
    with pytest.raises(TypeError):
        registry.add_action('event', 'not callable')
