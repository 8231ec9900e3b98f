"""
文件密钥库的加密

AES-256-GCM 认证加密，密文以 nonce:tag:ciphertext 的 hex 文本保存。
"""

import os
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12
TAG_SIZE = 16


class EncryptionError(Exception):
    """加密操作失败"""


@dataclass
class EncryptedData:
    ciphertext: bytes
    nonce: bytes
    tag: bytes

    def to_token(self) -> str:
        return f"{self.nonce.hex()}:{self.tag.hex()}:{self.ciphertext.hex()}"

    @classmethod
    def from_token(cls, token: str) -> "EncryptedData":
        try:
            nonce_hex, tag_hex, ciphertext_hex = token.strip().split(":")
            return cls(
                ciphertext=bytes.fromhex(ciphertext_hex),
                nonce=bytes.fromhex(nonce_hex),
                tag=bytes.fromhex(tag_hex),
            )
        except ValueError as e:
            raise EncryptionError(f"Malformed encrypted token: {e}") from e


class CryptoManager:
    """
    加密管理器

    Args:
        master_key: 32 字节主密钥 (见 generate_master_key)
    """

    def __init__(self, master_key: bytes):
        if len(master_key) != KEY_SIZE:
            raise ValueError(f"Master key must be {KEY_SIZE} bytes")
        self._aesgcm = AESGCM(master_key)

    def encrypt_string(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        # AESGCM 把 tag 附加在密文末尾
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedData(ciphertext=sealed[:-TAG_SIZE], nonce=nonce, tag=sealed[-TAG_SIZE:]).to_token()

    def decrypt_string(self, token: str) -> str:
        """
        Raises:
            EncryptionError: 格式错误、密钥错误或密文被篡改
        """
        encrypted = EncryptedData.from_token(token)
        try:
            plaintext = self._aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext + encrypted.tag, None)
        except Exception as e:
            raise EncryptionError(f"Decryption failed: {e}") from e
        return plaintext.decode("utf-8")


def generate_master_key() -> bytes:
    """生成随机的 AES-256 主密钥"""
    return os.urandom(KEY_SIZE)
