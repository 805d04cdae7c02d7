"""
HubGateway — 所有 Hub 资源请求的唯一出口。

每次请求前都向 TokenProvider 拿一个新 token，URL 一律是 <base_url><path>。
非 200 一律抛 HttpError，status_code 和原始 body 都带上。
"""

import logging
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import requests

from ..exceptions import FileSystemError, HttpError, TransportError, ValidationError
from .token import TokenProvider

logger = logging.getLogger(__name__)

USER_AGENT = "questlab-hub/1.0"
CHUNK_SIZE = 64 * 1024


class HubGateway:

    def __init__(self, token_provider: TokenProvider):
        self.token_provider = token_provider
        self.config = token_provider.config

    @property
    def base_url(self) -> str:
        return self.token_provider.base_url

    def _headers(self, accept: str = "application/json") -> dict[str, str]:
        token = self.token_provider.get_token()
        return {
            "Authorization": f"Bearer {token.access_token}",
            "Accept": accept,
            "User-Agent": USER_AGENT,
        }

    def _url(self, path: str) -> str:
        if not path:
            raise ValidationError("Resource location cannot be empty", code="EMPTY_RESOURCE_PATH")
        url = self.base_url + path
        # path 必须是 Hub 上的绝对路径，拼出来的 host 必须还是 Hub 自己
        if not path.startswith("/") or path.startswith("//") or \
                urlsplit(url).hostname != urlsplit(self.base_url).hostname:
            raise ValidationError(
                "Resource location must be a path on the Quest hub",
                code="INVALID_RESOURCE_PATH",
                detail={"path": path},
            )
        return url

    @staticmethod
    def _check(response: requests.Response, method: str, path: str) -> str:
        if response.status_code != 200:
            logger.error("[QuestHub] %s %s failed status=%s body=%s",
                         method, path, response.status_code, response.text)
            raise HttpError(
                f"Quest Hub {method} request failed",
                status_code=response.status_code,
                response_body=response.text,
            )
        return response.text

    def get(self, path: str) -> str:
        url = self._url(path)
        headers = self._headers()
        try:
            response = requests.get(url, headers=headers, timeout=self.config.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("[QuestHub] GET %s transport error: %s", path, exc)
            raise TransportError(f"HTTP Request Error: {exc}") from exc
        return self._check(response, "GET", path)

    def post(self, path: str, payload: dict[str, Any]) -> str:
        url = self._url(path)
        if not payload:
            raise ValidationError("Payload cannot be empty", code="EMPTY_PAYLOAD")
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.config.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("[QuestHub] POST %s transport error: %s", path, exc)
            raise TransportError(f"Exception during Quest POST request: {exc}") from exc
        return self._check(response, "POST", path)

    def download(self, path: str, destination: Path) -> Path:
        """
        GET 并把响应体直接流式写入 destination。

        非 200 时不落盘，抛 HttpError；写到一半失败会删掉已写的部分。
        """
        url = self._url(path)
        headers = self._headers(accept="*/*")
        destination = Path(destination)
        try:
            with requests.get(url, headers=headers, timeout=self.config.timeout, stream=True) as response:
                if response.status_code != 200:
                    self._check(response, "GET", path)
                try:
                    with open(destination, "wb") as fh:
                        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                            if chunk:
                                fh.write(chunk)
                except requests.exceptions.RequestException:
                    # RequestException 也是 OSError，断流要按网络错误处理
                    raise
                except OSError as exc:
                    raise FileSystemError(
                        f"Unable to write download to {destination}: {exc}",
                        path=destination,
                        operation="write",
                    ) from exc
        except requests.exceptions.RequestException as exc:
            logger.error("[QuestHub] download %s transport error: %s", path, exc)
            # 中途断流时不留下半截文件
            destination.unlink(missing_ok=True)
            raise TransportError(f"HTTP Request Error: {exc}") from exc
        except FileSystemError:
            destination.unlink(missing_ok=True)
            raise

        logger.info("[QuestHub] downloaded %s → %s", path, destination)
        return destination
