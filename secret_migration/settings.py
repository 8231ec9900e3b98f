"""
插件设置与迁移配置

核心功能：
- 插件设置快照模型 (Pydantic)
- 设置文件加载/保存 (JSON / YAML)
- 迁移工具配置 (环境变量 / .env)
"""

import os
import json
import logging
from typing import Any, Optional
from pathlib import Path

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .crypto import CryptoManager
from .vault import VaultBackend, create_vault_from_uri

logger = logging.getLogger(__name__)

ENV_PREFIX = "REMOTELY_SAVE_"
DEFAULT_VAULT_URI = "file://remotely-save-secrets.enc"


class ConfigValidationError(Exception):
    """配置验证失败"""


class SettingsFormatError(Exception):
    """不支持的设置文件格式"""


class _Section(BaseModel):
    # 保留未知字段，避免保存时丢失宿主数据
    model_config = ConfigDict(extra="allow", validate_assignment=True)


class S3Settings(_Section):
    s3Endpoint: str = ""
    s3Region: str = ""
    s3AccessKeyID: str = ""
    s3SecretAccessKey: str = ""
    s3BucketName: str = ""


class WebdavSettings(_Section):
    address: str = ""
    username: str = ""
    password: str = ""
    authType: str = "basic"


class WebdisSettings(_Section):
    address: str = ""
    username: str = ""
    password: str = ""


class AzureBlobStorageSettings(_Section):
    containerSasUrl: str = ""
    containerName: str = ""


class PluginSettings(_Section):
    """插件设置快照，secretsMigrated 为一次性迁移标记"""
    s3: S3Settings = Field(default_factory=S3Settings)
    webdav: WebdavSettings = Field(default_factory=WebdavSettings)
    webdis: WebdisSettings = Field(default_factory=WebdisSettings)
    azureblobstorage: AzureBlobStorageSettings = Field(default_factory=AzureBlobStorageSettings)
    password: str = ""
    serviceType: str = "s3"
    secretsMigrated: bool = False


class SettingsLoader:
    """
    设置文件加载器

    按扩展名选择格式：.json / .yml / .yaml
    """

    SUPPORTED_SUFFIXES = (".json", ".yml", ".yaml")

    def __init__(self, path: str | Path):
        self.path = Path(path)
        if self.path.suffix.lower() not in self.SUPPORTED_SUFFIXES:
            raise SettingsFormatError(f"Unknown settings file format: {self.path.suffix}")

    def load(self) -> PluginSettings:
        """
        加载并验证设置

        文件不存在时返回默认设置。

        Raises:
            ConfigValidationError: 文件内容无法解析或验证失败
        """
        if not self.path.exists():
            logger.info(f"Settings file {self.path} not found, using defaults")
            return PluginSettings()

        raw = self._read_raw()
        try:
            return PluginSettings.model_validate(raw)
        except ValidationError as e:
            raise ConfigValidationError(f"Settings validation failed: {e}") from e

    def save(self, settings: PluginSettings) -> None:
        data = settings.model_dump()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._is_yaml:
            text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        else:
            text = json.dumps(data, indent=2, ensure_ascii=False)
        self.path.write_text(text, encoding="utf-8")
        logger.info(f"Settings saved to {self.path}")

    @property
    def _is_yaml(self) -> bool:
        return self.path.suffix.lower() in (".yml", ".yaml")

    def _read_raw(self) -> dict[str, Any]:
        text = self.path.read_text(encoding="utf-8")
        try:
            raw = yaml.safe_load(text) if self._is_yaml else json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigValidationError(f"Cannot parse {self.path}: {e}") from e
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigValidationError(f"Settings root must be a mapping: {self.path}")
        return raw


class MigrationConfig(BaseModel):
    """迁移工具配置"""
    vault_uri: str = DEFAULT_VAULT_URI
    encryption_key: Optional[str] = None  # hex, file:// 需要
    audit_log: Optional[str] = None
    audit_signing_key: Optional[str] = None  # hex

    @field_validator("encryption_key", "audit_signing_key")
    @classmethod
    def _check_hex(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            bytes.fromhex(value)  # ValueError -> ValidationError
        return value

    @property
    def encryption_key_bytes(self) -> Optional[bytes]:
        return bytes.fromhex(self.encryption_key) if self.encryption_key else None

    @property
    def audit_signing_key_bytes(self) -> Optional[bytes]:
        return bytes.fromhex(self.audit_signing_key) if self.audit_signing_key else None


def load_migration_config(env_file: Optional[str | Path] = None) -> MigrationConfig:
    """
    从 .env 文件和环境变量加载迁移配置

    环境变量优先于 .env 文件：
    - REMOTELY_SAVE_VAULT_URI
    - REMOTELY_SAVE_ENCRYPTION_KEY
    - REMOTELY_SAVE_AUDIT_LOG
    - REMOTELY_SAVE_AUDIT_SIGNING_KEY
    """
    values: dict[str, Any] = {}
    if env_file is not None:
        values.update(dotenv_values(env_file))
    values.update(os.environ)

    raw = {}
    for name in MigrationConfig.model_fields:
        value = values.get(f"{ENV_PREFIX}{name.upper()}")
        if value:
            raw[name] = value

    try:
        return MigrationConfig(**raw)
    except ValidationError as e:
        raise ConfigValidationError(f"Migration config validation failed: {e}") from e


def create_vault(config: MigrationConfig) -> VaultBackend:
    """根据配置创建密钥存储"""
    if config.vault_uri.startswith("file://"):
        key = config.encryption_key_bytes
        if not key:
            raise ConfigValidationError("encryption_key required for file vault")
        return create_vault_from_uri(config.vault_uri, crypto_manager=CryptoManager(master_key=key))
    return create_vault_from_uri(config.vault_uri)
