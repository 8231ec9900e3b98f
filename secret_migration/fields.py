"""
敏感字段表

字段路径格式: "provider.field" (provider 专属) 或 "field" (顶层)。
表中的密钥名称是固定写死的，保证派生算法以后调整时，
已迁移安装的密钥名称不会改变。
"""

from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Optional

from .naming import derive_secret_name, is_valid_secret_name


class FieldTableError(Exception):
    """字段表配置错误 (构建期缺陷，而非运行期错误)"""


@dataclass(frozen=True)
class FieldPath:
    """设置叶子节点的地址"""
    field: str
    provider: Optional[str] = None

    @classmethod
    def parse(cls, dotpath: str) -> "FieldPath":
        parts = dotpath.split(".")
        if len(parts) > 2 or not all(parts):
            raise FieldTableError(f"Malformed field path: {dotpath!r}")
        if len(parts) == 2:
            return cls(field=parts[1], provider=parts[0])
        return cls(field=parts[0])

    @property
    def dotpath(self) -> str:
        if self.provider:
            return f"{self.provider}.{self.field}"
        return self.field

    def get(self, settings: Any) -> str:
        """读取字段值，分组或字段不存在时返回空字符串"""
        container = settings
        if self.provider:
            container = _read(settings, self.provider)
            if container is None:
                return ""
        value = _read(container, self.field)
        return "" if value is None else value

    def set(self, settings: Any, value: str) -> None:
        """写入字段值"""
        container = settings
        if self.provider:
            container = _read(settings, self.provider)
            if container is None:
                container = {}
                _write(settings, self.provider, container)
        _write(container, self.field, value)

    def __str__(self) -> str:
        return self.dotpath


@dataclass(frozen=True)
class SecretField:
    """字段表条目"""
    path: FieldPath
    identifier: str


def _read(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _write(obj: Any, name: str, value: Any) -> None:
    if isinstance(obj, MutableMapping):
        obj[name] = value
    else:
        setattr(obj, name, value)


# 所有敏感字段: dotpath -> 密钥名称
SECRET_FIELD_MAP: Mapping[str, str] = MappingProxyType({
    "s3.s3AccessKeyID": "remotely-save-s3-access-key-id",
    "s3.s3SecretAccessKey": "remotely-save-s3-secret-access-key",
    "webdav.username": "remotely-save-webdav-username",
    "webdav.password": "remotely-save-webdav-password",
    "webdis.username": "remotely-save-webdis-username",
    "webdis.password": "remotely-save-webdis-password",
    "azureblobstorage.containerSasUrl": "remotely-save-azure-container-sas-url",
    "password": "remotely-save-e2e-password",
})

# 生成上表时使用的 (dotpath, owner_tag)
SECRET_FIELD_OWNERS: tuple[tuple[str, str], ...] = (
    ("s3.s3AccessKeyID", "s3"),
    ("s3.s3SecretAccessKey", "s3"),
    ("webdav.username", "webdav"),
    ("webdav.password", "webdav"),
    ("webdis.username", "webdis"),
    ("webdis.password", "webdis"),
    ("azureblobstorage.containerSasUrl", "azure"),
    ("password", "e2e"),
)


def build_field_table(specs: Iterable[tuple[str, str]]) -> dict[str, str]:
    """
    用名称派生算法生成字段表

    只在新增敏感字段时使用一次，结果应固化到 SECRET_FIELD_MAP，
    运行期不应重新计算。
    """
    table: dict[str, str] = {}
    for dotpath, owner_tag in specs:
        path = FieldPath.parse(dotpath)
        table[path.dotpath] = derive_secret_name(owner_tag, path.field)
    return table


def validate_field_table(table: Mapping[str, str]) -> tuple[SecretField, ...]:
    """
    校验字段表并转换为有序的 SecretField 元组

    Raises:
        FieldTableError: 路径格式错误、名称含非法字符或名称重复
    """
    seen: dict[str, str] = {}
    fields = []
    for dotpath, identifier in table.items():
        path = FieldPath.parse(dotpath)
        if not is_valid_secret_name(identifier):
            raise FieldTableError(
                f"Invalid secret name for {dotpath}: {identifier!r}"
            )
        if identifier in seen:
            raise FieldTableError(
                f"Secret name {identifier} used by both {seen[identifier]} and {dotpath}"
            )
        seen[identifier] = dotpath
        fields.append(SecretField(path=path, identifier=identifier))
    return tuple(fields)


SECRET_FIELDS: tuple[SecretField, ...] = validate_field_table(SECRET_FIELD_MAP)
