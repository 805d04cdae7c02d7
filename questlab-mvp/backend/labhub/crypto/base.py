"""
BaseKeyProvider — 解密 key 来源的抽象基类。

ResultDecryptor 只认识 get_key()，不关心 key 存在数据库还是别处。
"""

import base64
import binascii
from abc import ABC, abstractmethod

from ..exceptions import DecryptionError


class BaseKeyProvider(ABC):

    @abstractmethod
    def get_key(self, name: str) -> bytes:
        """
        按名字取原始 key（例如 'sixa' = v006 加密 key，'sixb' = v006 HMAC key）。

        Raises:
            DecryptionError: key 不存在或格式不对
        """


class DatabaseKeyProvider(BaseKeyProvider):
    """从 keys 表读取 base64 编码的 key。"""

    def get_key(self, name: str) -> bytes:
        from ..models import CryptoKey

        try:
            value = CryptoKey.objects.get(name=name).value
        except CryptoKey.DoesNotExist:
            raise DecryptionError(f"Encryption key {name!r} not found", code='KEY_NOT_FOUND')

        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError(f"Encryption key {name!r} is malformed", code='KEY_MALFORMED') from exc
