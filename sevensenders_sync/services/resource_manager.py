"""
HTTPセッション管理のためのユーティリティ
"""
import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class SessionMixin:
    """requests.Session の遅延生成とクローズを担うミックスイン"""
    
    default_headers: Dict[str, str] = {
        'Content-Type': 'application/json',
        'Accept': 'application/json',
    }
    
    def __init__(self, *args, session: Optional[requests.Session] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._session = session
    
    @property
    def session(self) -> requests.Session:
        """遅延初期化されたセッション"""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(self.default_headers)
        return self._session
    
    def close_session(self):
        """セッションのクリーンアップ"""
        if self._session:
            self._session.close()
            self._session = None
            logger.debug(f"{self.__class__.__name__} session closed")
    
    def __enter__(self):
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_session()
