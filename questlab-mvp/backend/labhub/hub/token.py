"""
OAuth2 client-credentials token。

每次调用都是一次真实的网络请求，不做本地缓存：
调用方要预期每个操作都会多一次 token endpoint 的延迟。
"""

import logging
import time

import requests

from ..exceptions import ConfigError, HttpError, ParseError, TransportError
from .types import HubConfig, Token

logger = logging.getLogger(__name__)

TOKEN_PATH = "/hub-authorization-server/oauth2/token"


class TokenProvider:

    def __init__(self, config: HubConfig):
        if not config.client_id:
            raise ConfigError("Quest client ID is not configured", config_key="QUEST_CLIENT_ID")
        if not config.client_secret:
            raise ConfigError("Quest client secret is not configured", config_key="QUEST_CLIENT_SECRET")
        self.config = config

    @property
    def base_url(self) -> str:
        return self.config.base_url

    def get_token(self) -> Token:
        """
        向 Hub 申请一个新的 bearer token。

        Raises:
            HttpError:      非 200，或响应里没有 access_token
            ParseError:     响应不是 JSON
            TransportError: 网络层失败
        """
        url = self.base_url + TOKEN_PATH
        try:
            response = requests.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                },
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.error("[QuestHub] token request failed: %s", exc)
            raise TransportError(f"Exception during Quest token request: {exc}") from exc

        if response.status_code != 200:
            logger.error("[QuestHub] token request rejected status=%s body=%s",
                         response.status_code, response.text)
            raise HttpError(
                "Failed to obtain OAuth2 token from Quest Hub",
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError("Token response is not valid JSON", body=response.text) from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            logger.error("[QuestHub] token response missing access_token: %s", response.text)
            raise HttpError(
                "Invalid token response. Missing access_token.",
                status_code=response.status_code,
                response_body=response.text,
            )

        return Token(
            access_token=access_token,
            issued_at=time.time(),
            expires_in=payload.get("expires_in"),
        )
