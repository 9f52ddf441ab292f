#!/usr/bin/env python3
"""
Seven Senders API クライアントのテストモジュール
"""
import json
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch
import requests

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sevensenders_sync.api.seven_senders_api import SevenSendersAPI
from sevensenders_sync.services.exceptions import (
    AuthenticationError, InvalidResponseError, SevenSendersAPIError
)


def make_response(status_code, body=None, text=None):
    """テスト用レスポンスを生成"""
    response = requests.Response()
    response.status_code = status_code
    if text is None:
        text = json.dumps(body) if body is not None else ''
    response._content = text.encode('utf-8')
    response.encoding = 'utf-8'
    return response


def is_token_call(call):
    return call.args[1].endswith('/token')


class TestSevenSendersAPI:
    """Seven Senders API クライアントのテストクラス"""

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def client(self, session):
        """テスト用クライアント"""
        return SevenSendersAPI('https://api.example.com/v2/', 'secret-key', session=session)

    def test_init(self, client):
        """初期化テスト"""
        assert client.base_url == 'https://api.example.com/v2'
        assert client.access_key == 'secret-key'
        assert client.timeout == 30
        assert client.is_authenticated is False
        assert client.auth_attempts == 0

    def test_request_authenticates_first(self, client, session):
        """未認証の場合は先に認証するテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(201, {'id': 1}),
        ]

        body = client.request({'order_id': '100'}, 'orders')

        assert body == {'id': 1}
        token_call, order_call = session.request.call_args_list
        assert token_call.args == ('POST', 'https://api.example.com/v2/token')
        assert json.loads(token_call.kwargs['data']) == {'access_key': 'secret-key'}
        assert 'Authorization' not in token_call.kwargs['headers']
        assert order_call.args == ('POST', 'https://api.example.com/v2/orders')
        assert order_call.kwargs['headers']['Authorization'] == 'Bearer abc'
        assert order_call.kwargs['headers']['Content-Type'] == 'application/json'
        assert order_call.kwargs['timeout'] == 30
        assert json.loads(order_call.kwargs['data']) == {'order_id': '100'}

    def test_token_is_reused(self, client, session):
        """トークンがキャッシュされるテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(200, []),
            make_response(200, []),
        ]

        client.request(None, 'orders', 'GET')
        client.request(None, 'orders', 'GET')

        token_calls = [call for call in session.request.call_args_list if is_token_call(call)]
        assert len(token_calls) == 1

    def test_get_request_has_no_body(self, client, session):
        """GETリクエストはボディを送信しないテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(200, []),
        ]

        client.request({'ignored': True}, 'carriers', 'GET', {'page': 1})

        call = session.request.call_args_list[1]
        assert call.args[0] == 'GET'
        assert call.kwargs['data'] is None
        assert call.kwargs['params'] == {'page': 1}

    def test_401_triggers_single_reauthentication_and_replay(self, client, session):
        """401で1回だけ再認証して再送するテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'first'}),
            make_response(401, {'message': 'expired'}),
            make_response(200, {'token': 'second'}),
            make_response(201, {'id': 7}),
        ]

        body = client.request({'order_id': '100'}, 'orders')

        assert body == {'id': 7}
        calls = session.request.call_args_list
        assert len(calls) == 4
        assert sum(1 for call in calls if is_token_call(call)) == 2
        assert calls[1].kwargs['data'] == calls[3].kwargs['data']
        assert calls[3].kwargs['headers']['Authorization'] == 'Bearer second'
        assert client.auth_attempts == 0

    def test_persistent_401_halts_after_five_attempts(self, client, session):
        """401が続く場合は累積5回で停止するテスト"""
        def respond(method, url, **kwargs):
            if url.endswith('/token'):
                return make_response(200, {'token': 'tok'})
            return make_response(401, {'message': 'unauthorized'})

        session.request.side_effect = respond

        with pytest.raises(AuthenticationError) as exc_info:
            client.request({'order_id': '100'}, 'orders')

        assert exc_info.value.status_code == 401
        calls = session.request.call_args_list
        assert sum(1 for call in calls if is_token_call(call)) == 6
        assert sum(1 for call in calls if not is_token_call(call)) == 6
        assert client.auth_attempts == 5

        # 累積カウンターのため、次の呼び出しは再認証せずに停止する
        session.request.reset_mock()
        with pytest.raises(AuthenticationError):
            client.request({'order_id': '101'}, 'orders')

        calls = session.request.call_args_list
        assert len(calls) == 1
        assert not is_token_call(calls[0])

    def test_auth_counter_resets_after_non_401_response(self, client, session):
        """401以外の応答でカウンターがリセットされるテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'a'}),
            make_response(401),
            make_response(200, {'token': 'b'}),
            make_response(401),
            make_response(200, {'token': 'c'}),
            make_response(200, {'ok': True}),
        ]

        client.request(None, 'orders', 'GET')

        assert client.auth_attempts == 0

    def test_token_endpoint_401_is_not_retried(self, client, session):
        """トークン取得自体の401は再試行しないテスト"""
        session.request.return_value = make_response(401, {'message': 'bad key'})

        with pytest.raises(AuthenticationError):
            client.authenticate()

        assert session.request.call_count == 1

    def test_authenticate_without_token_field(self, client, session):
        """トークンフィールドがない場合のテスト"""
        session.request.return_value = make_response(200, {'access': 'nope'})

        with pytest.raises(AuthenticationError):
            client.authenticate()
        assert client.is_authenticated is False

    def test_non_2xx_response_raises(self, client, session):
        """2xx以外のステータスはエラーになるテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(500, text='Internal Server Error'),
        ]

        with pytest.raises(SevenSendersAPIError) as exc_info:
            client.request({}, 'orders')
        assert exc_info.value.status_code == 500

    def test_invalid_json_raises(self, client, session):
        """不正なJSONボディのテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(200, text='<html>oops</html>'),
        ]

        with pytest.raises(InvalidResponseError):
            client.request({}, 'orders')

    def test_network_error_raises_api_error(self, client, session):
        """通信エラーのテスト"""
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(SevenSendersAPIError):
            client.authenticate()

    @pytest.mark.parametrize('status_code', [400, 404, 409, 500, 503])
    def test_create_order_false_on_non_2xx(self, client, session, status_code):
        """注文作成は2xx以外でFalseを返すテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(status_code, {'error': 'nope'}),
        ]

        assert client.create_order({'order_id': '100'}) is False

    def test_create_order_true_on_2xx_with_body(self, client, session):
        """注文作成成功のテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(201, {'order_id': '100'}),
        ]

        assert client.create_order({'order_id': '100'}) is True

    def test_create_order_false_on_unparsable_body(self, client, session):
        """2xxでもボディが解釈できない場合はFalseのテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(201, text=''),
        ]

        assert client.create_order({'order_id': '100'}) is False

    def test_create_order_false_on_network_error(self, client, session):
        """通信エラー時はFalseを返すテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            requests.exceptions.Timeout("timed out"),
        ]

        assert client.create_order({'order_id': '100'}) is False

    def test_create_shipment(self, client, session):
        """出荷作成のテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(201, {'id': 3}),
        ]

        assert client.create_shipment({'order_id': '100'}) is True
        assert session.request.call_args.args[1] == 'https://api.example.com/v2/shipments'

    def test_set_order_state_payload(self, client, session):
        """注文状態設定の送信データテスト"""
        from datetime import datetime, timezone

        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(201, {'id': 9}),
        ]
        when = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

        assert client.set_order_state(1001, 'in_preparation', when) is True

        call = session.request.call_args
        assert call.args[1].endswith('/order_states')
        assert json.loads(call.kwargs['data']) == {
            'order_id': '1001',
            'state': 'in_preparation',
            'datetime': '2024-03-01T10:00:00+00:00',
        }

    def test_get_orders_accepts_collection_object(self, client, session):
        """hydra:member形式の注文一覧のテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(200, {'hydra:member': [{'order_id': '1'}]}),
        ]

        assert client.get_orders({'order_date[after]': '2024-01-01'}) == [{'order_id': '1'}]

    def test_get_orders_failure_returns_empty(self, client, session):
        """注文一覧取得失敗のテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(502, text='Bad Gateway'),
        ]

        assert client.get_orders() == []

    def test_get_orders_raise_on_error(self, client, session):
        """raise_on_error指定時は失敗を例外で通知するテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(502, text='Bad Gateway'),
            make_response(200, {'unexpected': True}),
        ]

        with pytest.raises(SevenSendersAPIError) as exc_info:
            client.get_orders(raise_on_error=True)
        assert exc_info.value.status_code == 502

        with pytest.raises(InvalidResponseError):
            client.get_orders(raise_on_error=True)

    def test_get_supported_carriers_is_memoized(self, client, session):
        """配送業者一覧がキャッシュされるテスト"""
        carriers = [{'code': 'dhl', 'countries': ['DE', 'AT']}]
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(200, carriers),
        ]

        assert client.get_supported_carriers() == carriers
        assert client.get_supported_carriers() == carriers
        assert session.request.call_count == 2

    def test_get_supported_carriers_failure_not_memoized(self, client, session):
        """取得失敗はキャッシュされないテスト"""
        carriers = [{'code': 'dhl', 'countries': ['DE']}]
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(500, text='error'),
            make_response(200, carriers),
        ]

        assert client.get_supported_carriers() == []
        assert client.get_supported_carriers() == carriers

    def test_carrier_cache_expires(self, client, session):
        """キャッシュの有効期限切れテスト"""
        session.request.side_effect = [
            make_response(200, {'token': 'abc'}),
            make_response(200, [{'code': 'dhl', 'countries': ['DE']}]),
            make_response(200, [{'code': 'ups', 'countries': ['DE']}]),
        ]

        with patch('sevensenders_sync.api.seven_senders_api.time.monotonic', return_value=1000.0):
            client.get_supported_carriers()
        with patch('sevensenders_sync.api.seven_senders_api.time.monotonic', return_value=1000.0 + 25 * 3600):
            carriers = client.get_supported_carriers()

        assert carriers == [{'code': 'ups', 'countries': ['DE']}]

    def test_is_carrier_valid(self, client):
        """配送業者の有効性判定テスト"""
        carriers = [
            {'code': 'dhl', 'countries': ['DE', 'AT']},
            {'code': 'gls', 'countries': ['FR']},
            {'code': 'ups', 'countries': None},
            'malformed',
        ]
        with patch.object(client, 'get_supported_carriers', return_value=carriers):
            assert client.is_carrier_valid('dhl', 'de') is True
            assert client.is_carrier_valid('dhl', 'AT') is True
            assert client.is_carrier_valid('dhl', 'FR') is False
            assert client.is_carrier_valid('hermes', 'DE') is False
            assert client.is_carrier_valid('', 'DE') is False
            assert client.is_carrier_valid('gls', None) is False
            assert client.is_carrier_valid('ups', 'DE') is False

    def test_test_connection(self, client, session):
        """接続テスト"""
        session.request.return_value = make_response(200, {'token': 'abc'})
        assert client.test_connection() is True

        session.request.return_value = make_response(403, {'message': 'forbidden'})
        assert client.test_connection() is False

    def test_context_manager_closes_session(self, session):
        """コンテキストマネージャーでセッションを閉じるテスト"""
        with SevenSendersAPI('https://api.example.com', 'k', session=session):
            pass
        session.close.assert_called_once()
