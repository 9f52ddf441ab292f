"""
フック管理システム - アクション/フィルターによる拡張ポイント

アクションは副作用のみのコールバック、フィルターは値を受け取り加工して返すコールバック。
いずれも優先度（小さい順）→登録順で同期的に呼び出される。
"""
import logging
from itertools import count
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)


class HookRegistry:
    """アクション/フィルターのレジストリ"""

    DEFAULT_PRIORITY = 10

    def __init__(self):
        self._actions: Dict[str, List[Tuple[int, int, Callable]]] = {}
        self._filters: Dict[str, List[Tuple[int, int, Callable]]] = {}
        self._sequence = count()

    def add_action(self, name: str, callback: Callable, priority: int = DEFAULT_PRIORITY) -> None:
        """アクションを登録"""
        self._register(self._actions, name, callback, priority)

    def add_filter(self, name: str, callback: Callable, priority: int = DEFAULT_PRIORITY) -> None:
        """フィルターを登録"""
        self._register(self._filters, name, callback, priority)

    def remove_action(self, name: str, callback: Callable) -> bool:
        """アクションを削除"""
        return self._unregister(self._actions, name, callback)

    def remove_filter(self, name: str, callback: Callable) -> bool:
        """フィルターを削除"""
        return self._unregister(self._filters, name, callback)

    def has_action(self, name: str) -> bool:
        return bool(self._actions.get(name))

    def has_filter(self, name: str) -> bool:
        return bool(self._filters.get(name))

    def do_action(self, name: str, *args, **kwargs) -> None:
        """
        アクションを実行

        Args:
            name: アクション名
            *args: コールバックに渡す引数
        """
        for _, _, callback in self._actions.get(name, []):
            logger.debug(f"Running action '{name}': {getattr(callback, '__name__', callback)}")
            callback(*args, **kwargs)

    def apply_filters(self, name: str, value: Any, *args, **kwargs) -> Any:
        """
        フィルターを適用

        Args:
            name: フィルター名
            value: 加工対象の値
            *args: コールバックに渡す追加引数

        Returns:
            全フィルター適用後の値
        """
        for _, _, callback in self._filters.get(name, []):
            logger.debug(f"Applying filter '{name}': {getattr(callback, '__name__', callback)}")
            value = callback(value, *args, **kwargs)
        return value

    def _register(self, table: Dict, name: str, callback: Callable, priority: int) -> None:
        if not callable(callback):
            raise TypeError(f"Hook callback for '{name}' is not callable")
        hooks = table.setdefault(name, [])
        hooks.append((priority, next(self._sequence), callback))
        hooks.sort(key=lambda entry: (entry[0], entry[1]))

    def _unregister(self, table: Dict, name: str, callback: Callable) -> bool:
        hooks = table.get(name, [])
        remaining = [entry for entry in hooks if entry[2] != callback]
        table[name] = remaining
        return len(remaining) != len(hooks)
