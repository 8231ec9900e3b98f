"""
明文密钥迁移

扫描设置快照中仍以明文保存的敏感字段，把值写入密钥存储，
并把设置中的字段改写为密钥名称 (引用)。

- 重复执行是安全的：已迁移标记或字段已等于自身密钥名称时跳过
- 某个写入失败时立即中止，迁移标记保持未设置；已完成的字段
  在设置中是引用、在存储中有值，重新执行会继续剩余字段
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Sequence

from .fields import SECRET_FIELD_MAP, SECRET_FIELDS, FieldPath, SecretField
from .vault import VaultError

if TYPE_CHECKING:
    from secret_security.audit import AuditLogger

logger = logging.getLogger(__name__)

MIGRATED_FLAG = "secretsMigrated"


class MigrationError(Exception):
    """迁移过程中写入密钥存储失败"""

    def __init__(self, message: str, path: Optional[str] = None, identifier: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.identifier = identifier


@dataclass(frozen=True)
class MigrationEntry:
    """待迁移的字段"""
    path: FieldPath
    identifier: str
    raw_value: str = field(repr=False)


class SecretMigrator:
    """
    密钥迁移器

    Args:
        store: 密钥存储，需要提供 set(name, value)；
            apply_async 也接受返回 awaitable 的 set
        field_table: 敏感字段表，默认为固定的 SECRET_FIELDS
        audit_logger: 可选的审计日志记录器
    """

    def __init__(
        self,
        store: Any = None,
        field_table: Sequence[SecretField] = SECRET_FIELDS,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._store = store
        self._fields = tuple(field_table)
        self._audit = audit_logger

    @property
    def field_table(self) -> tuple[SecretField, ...]:
        return self._fields

    def scan(self, settings: Any) -> list[MigrationEntry]:
        """
        找出需要迁移的字段，按字段表顺序返回

        settings.secretsMigrated 为真时直接返回空列表，
        即使某个字段仍是明文。
        """
        if _read_flag(settings):
            return []

        entries = []
        for secret_field in self._fields:
            raw_value = secret_field.path.get(settings)
            if not raw_value or raw_value == secret_field.identifier:
                continue
            entries.append(MigrationEntry(
                path=secret_field.path,
                identifier=secret_field.identifier,
                raw_value=raw_value,
            ))
        return entries

    def apply(self, settings: Any) -> bool:
        """
        执行迁移

        Returns:
            至少迁移了一个字段时返回 True

        Raises:
            MigrationError: 密钥存储写入失败 (迁移标记不会被设置)
        """
        entries = self._begin(settings)
        if not entries:
            return False

        for entry in entries:
            try:
                result = self._store.set(entry.identifier, entry.raw_value)
            except Exception as e:
                self._fail(entry, e)
            if inspect.isawaitable(result):
                _discard(result)
                raise MigrationError(
                    "Secret store is asynchronous, use apply_async()",
                    path=entry.path.dotpath,
                    identifier=entry.identifier,
                )
            self._commit(settings, entry, result)

        self._finish(settings, entries)
        return True

    async def apply_async(self, settings: Any) -> bool:
        """apply() 的异步版本，逐个等待写入完成，不并行"""
        entries = self._begin(settings)
        if not entries:
            return False

        for entry in entries:
            try:
                result = self._store.set(entry.identifier, entry.raw_value)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                self._fail(entry, e)
            self._commit(settings, entry, result)

        self._finish(settings, entries)
        return True

    def _begin(self, settings: Any) -> list[MigrationEntry]:
        entries = self.scan(settings)
        if not entries:
            reason = "already migrated" if _read_flag(settings) else "no plaintext secrets"
            logger.debug(f"Secret migration skipped: {reason}")
            if self._audit:
                self._audit.log_migration_skipped(reason)
            return []
        if self._store is None:
            raise MigrationError("No secret store configured")
        logger.info(f"Migrating {len(entries)} secret(s) to secret store")
        return entries

    def _commit(self, settings: Any, entry: MigrationEntry, result: Any) -> None:
        if result is False:
            self._fail(entry, VaultError(f"Secret store rejected {entry.identifier}"))
        entry.path.set(settings, entry.identifier)
        logger.info(f"Migrated {entry.path} -> {entry.identifier}")
        if self._audit:
            self._audit.log_secret_migrated(entry.path.dotpath, entry.identifier)

    def _fail(self, entry: MigrationEntry, error: Exception) -> None:
        logger.error(f"Failed to store secret for {entry.path}: {error}")
        if self._audit:
            self._audit.log_migration_failed(entry.path.dotpath, entry.identifier, error)
        raise MigrationError(
            f"Failed to migrate {entry.path} to {entry.identifier}: {error}",
            path=entry.path.dotpath,
            identifier=entry.identifier,
        ) from error

    def _finish(self, settings: Any, entries: list[MigrationEntry]) -> None:
        FieldPath(MIGRATED_FLAG).set(settings, True)
        logger.info(f"Secret migration complete ({len(entries)} migrated)")
        if self._audit:
            self._audit.log_migration_completed([e.path.dotpath for e in entries])


def _read_flag(settings: Any) -> bool:
    return bool(FieldPath(MIGRATED_FLAG).get(settings))


def _discard(awaitable: Any) -> None:
    close = getattr(awaitable, "close", None)
    if close:
        close()


def scan_settings(settings: Any) -> list[MigrationEntry]:
    """便捷函数：用默认字段表扫描"""
    return SecretMigrator().scan(settings)


def apply_migrations(store: Any, settings: Any) -> bool:
    """便捷函数：用默认字段表迁移"""
    return SecretMigrator(store).apply(settings)


def resolve_secret(
    store: Any,
    name: Optional[str],
    audit_logger: Optional["AuditLogger"] = None,
) -> Optional[str]:
    """
    从密钥存储读取密钥值

    名称为空或密钥不存在时返回 None，不抛异常。
    """
    if not name:
        return None
    try:
        value = store.get(name)
    except VaultError:
        value = None
    if audit_logger:
        audit_logger.log_secret_resolved(name, found=bool(value))
    return value or None


def resolve_field(store: Any, settings: Any, dotpath: str) -> Optional[str]:
    """
    读取敏感字段的实际值

    字段保存的是自身密钥名称时从存储解析，否则返回明文 (未迁移)。
    """
    identifier = SECRET_FIELD_MAP.get(dotpath)
    value = FieldPath.parse(dotpath).get(settings)
    if identifier and value == identifier:
        return resolve_secret(store, identifier)
    return value or None
