"""
Unit tests for TokenProvider.

覆盖：
1. 缺 client id / secret → ConfigError，且不发任何请求
2. 测试 / 正式环境 URL 选择
3. 200 + access_token → Token
4. 非 200 → HttpError（status + body 原样）
5. 缺 access_token / 非 JSON / 网络异常
"""
from dataclasses import replace
from unittest.mock import patch

import pytest
import requests

from labhub.exceptions import ConfigError, HttpError, ParseError, TransportError
from labhub.hub.token import TOKEN_PATH, TokenProvider
from labhub.hub.types import HUB_RESOURCE_PRODUCTION_URL, HUB_RESOURCE_TESTING_URL
from tests.conftest import fake_response


class TestConfiguration:

    @patch('labhub.hub.token.requests.post')
    def test_missing_client_id_raises_before_network(self, mock_post, hub_config):
        with pytest.raises(ConfigError) as exc_info:
            TokenProvider(replace(hub_config, client_id=''))

        assert exc_info.value.config_key == 'QUEST_CLIENT_ID'
        mock_post.assert_not_called()

    @patch('labhub.hub.token.requests.post')
    def test_missing_client_secret_raises_before_network(self, mock_post, hub_config):
        with pytest.raises(ConfigError) as exc_info:
            TokenProvider(replace(hub_config, client_secret=''))

        assert exc_info.value.config_key == 'QUEST_CLIENT_SECRET'
        mock_post.assert_not_called()

    def test_testing_url_by_default(self, hub_config):
        assert TokenProvider(hub_config).base_url == HUB_RESOURCE_TESTING_URL

    def test_production_url(self, hub_config):
        provider = TokenProvider(replace(hub_config, production_mode=True))
        assert provider.base_url == HUB_RESOURCE_PRODUCTION_URL


class TestGetToken:

    @patch('labhub.hub.token.requests.post')
    def test_success(self, mock_post, hub_config):
        mock_post.return_value = fake_response(200, {'access_token': 'abc', 'expires_in': 3600})

        token = TokenProvider(hub_config).get_token()

        assert token.access_token == 'abc'
        assert token.expires_in == 3600
        assert token.issued_at > 0

    @patch('labhub.hub.token.requests.post')
    def test_form_encoded_client_credentials(self, mock_post, hub_config):
        mock_post.return_value = fake_response(200, {'access_token': 'abc'})

        TokenProvider(hub_config).get_token()

        args, kwargs = mock_post.call_args
        assert args[0] == HUB_RESOURCE_TESTING_URL + TOKEN_PATH
        assert kwargs['data'] == {
            'grant_type': 'client_credentials',
            'client_id': 'client-id',
            'client_secret': 'client-secret',
        }

    @patch('labhub.hub.token.requests.post')
    def test_every_call_is_a_live_request(self, mock_post, hub_config):
        mock_post.return_value = fake_response(200, {'access_token': 'abc'})
        provider = TokenProvider(hub_config)

        provider.get_token()
        provider.get_token()

        assert mock_post.call_count == 2

    @patch('labhub.hub.token.requests.post')
    def test_non_200_raises_http_error_with_body(self, mock_post, hub_config):
        mock_post.return_value = fake_response(401, '{"error":"invalid_client"}')

        with pytest.raises(HttpError) as exc_info:
            TokenProvider(hub_config).get_token()

        assert exc_info.value.status_code == 401
        assert exc_info.value.response_body == '{"error":"invalid_client"}'

    @patch('labhub.hub.token.requests.post')
    def test_missing_access_token_raises_http_error(self, mock_post, hub_config):
        mock_post.return_value = fake_response(200, {'token_type': 'bearer'})

        with pytest.raises(HttpError) as exc_info:
            TokenProvider(hub_config).get_token()

        assert exc_info.value.status_code == 200

    @patch('labhub.hub.token.requests.post')
    def test_non_json_raises_parse_error(self, mock_post, hub_config):
        mock_post.return_value = fake_response(200, '<html>maintenance</html>')

        with pytest.raises(ParseError) as exc_info:
            TokenProvider(hub_config).get_token()

        assert exc_info.value.body == '<html>maintenance</html>'

    @patch('labhub.hub.token.requests.post')
    def test_connection_error_raises_transport_error(self, mock_post, hub_config):
        mock_post.side_effect = requests.exceptions.ConnectionError('dns failure')

        with pytest.raises(TransportError):
            TokenProvider(hub_config).get_token()
