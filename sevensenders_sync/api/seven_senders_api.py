"""
Seven Senders API クライアント
"""
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import requests

from ..services.exceptions import (
    AuthenticationError, InvalidResponseError, SevenSendersAPIError
)
from ..services.resource_manager import SessionMixin
from ..utils.constants import Constants
from ..utils.utils import join_url, safe_get_nested


logger = logging.getLogger(__name__)

JSONBody = Union[Dict[str, Any], List[Any]]


class SevenSendersAPI(SessionMixin):
    """Seven Senders REST API クライアント"""

    def __init__(
        self,
        base_url: str,
        access_key: str,
        timeout: int = Constants.API_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Seven Senders APIクライアントの初期化

        Args:
            base_url: APIのベースURL
            access_key: APIアクセスキー
            timeout: リクエストタイムアウト（秒）
            session: 利用するrequestsセッション（テスト用）
        """
        super().__init__(session=session)
        self.base_url = base_url.rstrip('/')
        self.access_key = access_key
        self.timeout = timeout

        # 認証状態（インスタンス単位で保持）
        self._token: Optional[str] = None
        self._auth_attempts = 0

        # 配送業者キャッシュ
        self._carriers: Optional[List[Dict[str, Any]]] = None
        self._carriers_cached_at: Optional[float] = None

        logger.info(f"Seven Senders API client initialized for: {self.base_url}")

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    @property
    def auth_attempts(self) -> int:
        """401による再認証の累積回数"""
        return self._auth_attempts

    def request(
        self,
        data: Optional[JSONBody] = None,
        endpoint: str = '',
        method: str = 'POST',
        params: Optional[Dict[str, Any]] = None,
        authenticate: bool = True
    ) -> JSONBody:
        """
        APIにJSONリクエストを送信

        401が返された場合は再認証して同じリクエストを再送する。再認証は
        クライアント単位で累積 MAX_AUTH_ATTEMPTS 回までで、401以外の応答を
        受け取った時点でカウンターはリセットされる。

        Args:
            data: リクエストボディ（GETでは送信しない）
            endpoint: エンドポイント名
            method: HTTPメソッド
            params: クエリパラメータ
            authenticate: Bearerトークンを付与するか

        Returns:
            パース済みのレスポンスボディ

        Raises:
            AuthenticationError: 認証に失敗した場合
            InvalidResponseError: レスポンスボディがJSONでない場合
            SevenSendersAPIError: 通信エラー・2xx以外のステータスの場合
        """
        if authenticate and not self.is_authenticated:
            self.authenticate()

        while True:
            response = self._send(data, endpoint, method, params, authenticate)

            if authenticate and response.status_code == 401:
                if self._auth_attempts >= Constants.MAX_AUTH_ATTEMPTS:
                    raise AuthenticationError(
                        f"Re-authentication limit reached ({Constants.MAX_AUTH_ATTEMPTS}) "
                        f"for {method} {endpoint}",
                        status_code=401
                    )
                self._auth_attempts += 1
                logger.warning(
                    f"401 from {method} {endpoint}, re-authenticating "
                    f"(attempt {self._auth_attempts}/{Constants.MAX_AUTH_ATTEMPTS})"
                )
                self._token = None
                self.authenticate()
                continue

            if authenticate:
                self._auth_attempts = 0
            break

        if not 200 <= response.status_code < 300:
            raise SevenSendersAPIError(
                f"{method} {endpoint} failed: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code
            )

        return self._parse_response(response, endpoint)

    def _send(
        self,
        data: Optional[JSONBody],
        endpoint: str,
        method: str,
        params: Optional[Dict[str, Any]],
        authenticate: bool
    ) -> requests.Response:
        """リクエストを1回送信"""
        method = method.upper()
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if authenticate and self._token:
            headers['Authorization'] = f"Bearer {self._token}"

        body = None
        if method != 'GET' and data is not None:
            body = json.dumps(data)

        url = join_url(self.base_url, endpoint)
        logger.debug(f"{method} {url} params={params}")

        try:
            return self.session.request(
                method, url, data=body, params=params, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise SevenSendersAPIError(f"Network error on {method} {endpoint}: {e}")

    def _parse_response(self, response: requests.Response, endpoint: str) -> JSONBody:
        """レスポンスボディをJSONとして解釈"""
        if not response.text or not response.text.strip():
            raise InvalidResponseError(
                f"Empty response body from {endpoint}", status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(
                f"Invalid JSON from {endpoint}: {e}", status_code=response.status_code
            )

    def authenticate(self) -> str:
        """
        アクセスキーでトークンを取得し、インスタンスに保持

        Returns:
            取得したトークン

        Raises:
            AuthenticationError: トークンを取得できなかった場合
        """
        try:
            body = self.request(
                {'access_key': self.access_key}, Constants.ENDPOINT_TOKEN, 'POST', authenticate=False
            )
        except SevenSendersAPIError as e:
            raise AuthenticationError(f"Authentication failed: {e}", status_code=e.status_code)

        token = safe_get_nested(body, 'token')
        if not token:
            raise AuthenticationError("Authentication response did not contain a token")

        self._token = token
        logger.debug("Authenticated against Seven Senders API")
        return token

    def create_order(self, data: Dict[str, Any]) -> bool:
        """
        注文を作成

        Args:
            data: 注文データ

        Returns:
            成功時True
        """
        try:
            self.request(data, Constants.ENDPOINT_ORDERS)
            logger.info(f"Created order: {data.get('order_id')}")
            return True
        except SevenSendersAPIError as e:
            logger.error(f"Failed to create order {data.get('order_id')}: {e}")
            return False

    def create_shipment(self, data: Dict[str, Any]) -> bool:
        """
        出荷を作成

        Args:
            data: 出荷データ

        Returns:
            成功時True
        """
        try:
            self.request(data, Constants.ENDPOINT_SHIPMENTS)
            logger.info(f"Created shipment for order: {data.get('order_id')}")
            return True
        except SevenSendersAPIError as e:
            logger.error(f"Failed to create shipment for order {data.get('order_id')}: {e}")
            return False

    def set_order_state(self, order_number: str, state: str, when: Optional[datetime] = None) -> bool:
        """
        注文状態を設定

        Args:
            order_number: 注文番号
            state: 状態名
            when: 状態の日時（省略時は現在時刻）

        Returns:
            成功時True
        """
        when = when or datetime.now(timezone.utc)
        data = {
            'order_id': str(order_number),
            'state': state,
            'datetime': when.isoformat(),
        }
        try:
            self.request(data, Constants.ENDPOINT_ORDER_STATES)
            logger.info(f"Set order state: {order_number} -> {state}")
            return True
        except SevenSendersAPIError as e:
            logger.error(f"Failed to set order state {order_number} -> {state}: {e}")
            return False

    def get_orders(
        self,
        params: Optional[Dict[str, Any]] = None,
        raise_on_error: bool = False
    ) -> List[Dict[str, Any]]:
        """
        注文一覧を取得

        Args:
            params: クエリパラメータ
            raise_on_error: 失敗時に空リストを返さず例外を送出するか

        Returns:
            注文のリスト、失敗時は空リスト

        Raises:
            SevenSendersAPIError: raise_on_error指定時にリクエスト・レスポンス形式が不正な場合
        """
        try:
            body = self.request(None, Constants.ENDPOINT_ORDERS, 'GET', params or {})
        except SevenSendersAPIError as e:
            logger.error(f"Failed to get orders: {e}")
            if raise_on_error:
                raise
            return []

        members = self._collection_members(body)
        if members is None:
            logger.warning("Unexpected orders response format")
            if raise_on_error:
                raise InvalidResponseError("Unexpected orders response format")
            return []
        return members

    @staticmethod
    def _collection_members(body: JSONBody) -> Optional[List[Any]]:
        """リストまたはHydraコレクションから要素を取り出す"""
        if isinstance(body, dict):
            body = safe_get_nested(body, 'hydra:member', default=[])
        return body if isinstance(body, list) else None

    def get_supported_carriers(self) -> List[Dict[str, Any]]:
        """
        対応配送業者一覧を取得（成功時はキャッシュ）

        Returns:
            配送業者のリスト、失敗時は空リスト
        """
        if self._carriers is not None and not self._carrier_cache_expired():
            return self._carriers

        try:
            body = self.request(None, Constants.ENDPOINT_CARRIERS, 'GET')
        except SevenSendersAPIError as e:
            logger.error(f"Failed to get carriers: {e}")
            return []

        body = self._collection_members(body)
        if body is None:
            logger.warning("Unexpected carriers response format")
            return []

        self._carriers = body
        self._carriers_cached_at = time.monotonic()
        logger.info(f"Fetched {len(body)} supported carriers")
        return body

    def _carrier_cache_expired(self) -> bool:
        if self._carriers_cached_at is None:
            return True
        age = time.monotonic() - self._carriers_cached_at
        return age > Constants.CARRIER_CACHE_TTL_HOURS * 3600

    def clear_carrier_cache(self) -> None:
        self._carriers = None
        self._carriers_cached_at = None

    def is_carrier_valid(self, carrier: Optional[str], country: Optional[str]) -> bool:
        """
        配送業者が対応一覧に含まれ、配送先国に対応しているかチェック

        Args:
            carrier: 配送業者コード
            country: 配送先国コード

        Returns:
            有効な場合True
        """
        if not carrier or not country:
            return False

        for entry in self.get_supported_carriers():
            if str(safe_get_nested(entry, 'code', default='')).lower() != carrier.strip().lower():
                continue
            return country.strip().upper() in (safe_get_nested(entry, 'countries') or [])

        logger.debug(f"Carrier not supported: {carrier}")
        return False

    def test_connection(self) -> bool:
        """
        APIへの接続テスト

        Returns:
            認証に成功した場合True
        """
        try:
            self.authenticate()
            logger.info("Seven Senders API connection OK")
            return True
        except SevenSendersAPIError as e:
            logger.error(f"Connection test failed: {e}")
            return False
