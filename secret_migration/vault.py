"""
密钥存储后端

迁移引擎只依赖两个操作：
- get(name) -> value | None
- set(name, value) -> 是否成功

后端：
- memory://       进程内字典，用于测试
- env://PREFIX    环境变量，只对当前进程及其子进程可见
- file://PATH     AES-GCM 加密的 JSON 文件，跨进程持久
"""

import os
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional
from dataclasses import dataclass
from pathlib import Path
from datetime import datetime, timezone

from .crypto import CryptoManager, EncryptionError

logger = logging.getLogger(__name__)


@dataclass
class SecretEntry:
    name: str
    value: str
    created_at: Optional[datetime] = None


class VaultError(Exception):
    """Vault 操作失败"""


class VaultBackend(ABC):
    """密钥存储后端抽象基类"""

    # 进程退出后密钥是否仍然保留
    persistent: bool = True

    @abstractmethod
    def get_secret(self, name: str) -> SecretEntry:
        """获取密钥，不存在时抛出 VaultError"""

    @abstractmethod
    def set_secret(self, name: str, value: str) -> SecretEntry:
        """存储密钥，覆盖同名旧值"""

    @abstractmethod
    def delete_secret(self, name: str) -> bool:
        """删除密钥，返回是否存在"""

    @abstractmethod
    def list_secrets(self) -> list[str]:
        """列出所有密钥名称"""

    def get(self, name: str) -> Optional[str]:
        if not name:
            return None
        try:
            return self.get_secret(name).value
        except VaultError:
            return None

    def set(self, name: str, value: str) -> bool:
        self.set_secret(name, value)
        return True


class MemoryVault(VaultBackend):

    persistent = False

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._entries: dict[str, SecretEntry] = {}
        for name, value in (initial or {}).items():
            self.set_secret(name, value)

    def get_secret(self, name: str) -> SecretEntry:
        try:
            return self._entries[name]
        except KeyError:
            raise VaultError(f"Secret not found: {name}") from None

    def set_secret(self, name: str, value: str) -> SecretEntry:
        self._entries[name] = SecretEntry(name, value, datetime.now(timezone.utc))
        return self._entries[name]

    def delete_secret(self, name: str) -> bool:
        return self._entries.pop(name, None) is not None

    def list_secrets(self) -> list[str]:
        return list(self._entries)


class EnvVault(VaultBackend):
    """
    环境变量密钥后端

    密钥名称映射为大写下划线形式：
    remotely-save-s3-access-key-id -> <PREFIX>REMOTELY_SAVE_S3_ACCESS_KEY_ID
    """

    persistent = False

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.upper()

    def env_key(self, name: str) -> str:
        return f"{self.prefix}{name}".upper().replace("-", "_")

    def get_secret(self, name: str) -> SecretEntry:
        key = self.env_key(name)
        if key not in os.environ:
            raise VaultError(f"Secret not found: {name} (env: {key})")
        return SecretEntry(name, os.environ[key])

    def set_secret(self, name: str, value: str) -> SecretEntry:
        os.environ[self.env_key(name)] = value
        return SecretEntry(name, value)

    def delete_secret(self, name: str) -> bool:
        return os.environ.pop(self.env_key(name), None) is not None

    def list_secrets(self) -> list[str]:
        return [
            key[len(self.prefix):].lower().replace("_", "-")
            for key in os.environ
            if key.upper().startswith(self.prefix)
        ]


class FileVault(VaultBackend):
    """
    加密文件密钥后端

    整个文件是一个加密 token，明文为 {name: {"value", "created_at"}} 的 JSON。
    每次 set/delete 都重写整个文件。
    """

    def __init__(self, file_path: str | Path, crypto_manager: CryptoManager):
        self.file_path = Path(file_path)
        self.crypto = crypto_manager
        self._data: Optional[dict[str, dict]] = None

    def _read(self) -> dict[str, dict]:
        if self._data is None:
            if not self.file_path.exists():
                self._data = {}
            else:
                try:
                    self._data = json.loads(self.crypto.decrypt_string(self.file_path.read_text()))
                except (EncryptionError, ValueError, OSError) as e:
                    raise VaultError(f"Cannot open vault {self.file_path}: {e}") from e
        return self._data

    def _write(self, data: dict[str, dict]) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self.file_path.write_text(self.crypto.encrypt_string(json.dumps(data)))
        except OSError as e:
            raise VaultError(f"Cannot write vault {self.file_path}: {e}") from e
        self._data = data

    def get_secret(self, name: str) -> SecretEntry:
        record = self._read().get(name)
        if record is None:
            raise VaultError(f"Secret not found: {name}")
        created_at = record.get("created_at")
        return SecretEntry(name, record["value"], datetime.fromisoformat(created_at) if created_at else None)

    def set_secret(self, name: str, value: str) -> SecretEntry:
        entry = SecretEntry(name, value, datetime.now(timezone.utc))
        self._write({**self._read(), name: {"value": value, "created_at": entry.created_at.isoformat()}})
        logger.debug(f"Stored secret {name} in {self.file_path}")
        return entry

    def delete_secret(self, name: str) -> bool:
        data = dict(self._read())
        if data.pop(name, None) is None:
            return False
        self._write(data)
        return True

    def list_secrets(self) -> list[str]:
        return list(self._read())


def create_vault_from_uri(uri: str, crypto_manager: Optional[CryptoManager] = None) -> VaultBackend:
    """
    从 URI 创建后端: memory://、env://[prefix]、file://path (需要 crypto_manager)
    """
    scheme, sep, rest = uri.partition("://")
    if not sep:
        raise VaultError(f"Invalid vault URI: {uri}")

    if scheme == "memory":
        return MemoryVault()
    if scheme == "env":
        return EnvVault(prefix=rest)
    if scheme == "file":
        if crypto_manager is None:
            raise VaultError("crypto_manager required for file vault")
        return FileVault(rest, crypto_manager)
    raise VaultError(f"Unknown vault URI scheme: {uri}")
