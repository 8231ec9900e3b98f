"""
明文密钥迁移引擎

- 字段路径 -> 密钥名称的确定性派生
- 固定的敏感字段表
- 一次性迁移扫描与执行
- 密钥存储后端 (内存 / 环境变量 / 加密文件)
"""

from .naming import derive_secret_name, is_valid_secret_name
from .fields import (
    SECRET_FIELD_MAP,
    SECRET_FIELDS,
    FieldPath,
    FieldTableError,
    SecretField,
    build_field_table,
    validate_field_table,
)
from .migration import (
    MigrationEntry,
    MigrationError,
    SecretMigrator,
    apply_migrations,
    resolve_field,
    resolve_secret,
    scan_settings,
)
from .vault import VaultBackend, VaultError, MemoryVault, EnvVault, FileVault, create_vault_from_uri
from .settings import PluginSettings, SettingsLoader, MigrationConfig, load_migration_config, create_vault

__all__ = [
    "derive_secret_name",
    "is_valid_secret_name",
    "SECRET_FIELD_MAP",
    "SECRET_FIELDS",
    "FieldPath",
    "FieldTableError",
    "SecretField",
    "build_field_table",
    "validate_field_table",
    "MigrationEntry",
    "MigrationError",
    "SecretMigrator",
    "apply_migrations",
    "resolve_field",
    "resolve_secret",
    "scan_settings",
    "VaultBackend",
    "VaultError",
    "MemoryVault",
    "EnvVault",
    "FileVault",
    "create_vault_from_uri",
    "PluginSettings",
    "SettingsLoader",
    "MigrationConfig",
    "load_migration_config",
    "create_vault",
]

__version__ = "1.0.0"
