"""
结果文件解密。

加密文件格式：三位版本号 + base64( hmac[48] | iv[16] | ciphertext )
  - AES-256-CBC，PKCS7 padding
  - HMAC-SHA384，覆盖 iv + ciphertext
  - key 名：<版本英文>a = 加密 key，<版本英文>b = HMAC key（'sixa' / 'sixb'）

支持 004 ~ 006。drive_encryption 关闭时原样返回，并给出 warning。
"""

import base64
import binascii
import hashlib
import hmac
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..exceptions import DecryptionError
from .base import BaseKeyProvider

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(rb"^00[1-6]")
HMAC_LENGTH = 48
IV_LENGTH = 16

KEY_NAMES = {
    "004": "four",
    "005": "five",
    "006": "six",
}

ENCRYPTION_DISABLED_WARNING = "Drive encryption is disabled; content returned as stored."


@dataclass
class DecryptedResult:
    content: bytes = field(repr=False)
    encrypted: bool = True
    version: Optional[str] = None
    warning: Optional[str] = None


def detect_encryption_version(head: bytes) -> Optional[str]:
    """前三个字节是 00[1-6] 就认为是加密文件，返回版本号。仅供展示参考。"""
    match = VERSION_RE.match(head[:3])
    return match.group(0).decode("ascii") if match else None


@dataclass
class ResultFileInfo:
    name: str
    size: int
    modified: datetime
    encrypted: bool = False
    version: Optional[str] = None


def list_result_files(directory) -> list[ResultFileInfo]:
    """列出目录下的文件，按修改时间倒序。"""
    files = []
    for path in Path(directory).iterdir():
        if not path.is_file():
            continue
        stat = path.stat()
        try:
            with open(path, "rb") as fh:
                version = detect_encryption_version(fh.read(3))
        except OSError:
            version = None
        files.append(ResultFileInfo(
            name=path.name,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime),
            encrypted=version is not None,
            version=version,
        ))
    files.sort(key=lambda info: info.modified, reverse=True)
    return files


class ResultDecryptor:

    def __init__(self, key_provider: BaseKeyProvider, drive_encryption: bool = True):
        self.key_provider = key_provider
        self.drive_encryption = drive_encryption

    def decrypt(self, raw: bytes) -> DecryptedResult:
        """
        Raises:
            DecryptionError: 版本不支持 / HMAC 不匹配 / padding 错 / 解出来为空
        """
        if not self.drive_encryption:
            logger.warning("[Decrypt] drive encryption disabled, passing content through")
            return DecryptedResult(content=raw, encrypted=False, warning=ENCRYPTION_DISABLED_WARNING)

        version = raw[:3].decode("ascii", errors="replace")
        key_name = KEY_NAMES.get(version)
        if key_name is None:
            raise DecryptionError(f"Unsupported encryption version {version!r}", code='UNSUPPORTED_VERSION')

        plaintext = self._core_decrypt(raw[3:], key_name)
        if not plaintext:
            raise DecryptionError("Decryption produced empty content", code='EMPTY_PLAINTEXT')
        return DecryptedResult(content=plaintext, encrypted=True, version=version)

    def _core_decrypt(self, body: bytes, key_name: str) -> bytes:
        try:
            blob = base64.b64decode(body.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Encrypted payload is not valid base64") from exc

        if len(blob) <= HMAC_LENGTH + IV_LENGTH:
            raise DecryptionError("Encrypted payload is truncated")

        mac = blob[:HMAC_LENGTH]
        iv = blob[HMAC_LENGTH:HMAC_LENGTH + IV_LENGTH]
        ciphertext = blob[HMAC_LENGTH + IV_LENGTH:]

        secret_key = self.key_provider.get_key(key_name + "a")
        secret_hmac = self.key_provider.get_key(key_name + "b")

        expected = hmac.new(secret_hmac, iv + ciphertext, hashlib.sha384).digest()
        if not hmac.compare_digest(mac, expected):
            raise DecryptionError("HMAC verification failed", code='HMAC_MISMATCH')

        try:
            decryptor = Cipher(algorithms.AES(secret_key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise DecryptionError(f"Decryption failed: {exc}") from exc
