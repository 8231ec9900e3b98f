"""
密钥名称派生

把设置字段 (如 s3.s3AccessKeyID) 转换为密钥存储可接受的名称。
密钥名称只允许 [a-z0-9-]。
"""

import re

SECRET_NAMESPACE = "remotely-save"

_SECRET_NAME_RE = re.compile(r"[a-z0-9-]+")
_LOWER_TO_UPPER = re.compile(r"([a-z\d])([A-Z])")
_ACRONYM_TO_WORD = re.compile(r"([A-Z]+)([A-Z][a-z])")


def derive_secret_name(owner_tag: str, field_name: str) -> str:
    """
    从所属分组和字段名派生密钥名称

    Args:
        owner_tag: 所属 provider/分组标签，如 "s3"、"webdav"
        field_name: 原始 camelCase 字段名，如 "s3AccessKeyID"

    Returns:
        形如 "remotely-save-s3-access-key-id" 的密钥名称

    字段名等于 owner_tag 时结果退化为 "remotely-save-<owner>-"，
    调用方应避免这种输入。
    """
    stripped = field_name
    if field_name.lower().startswith(owner_tag.lower()):
        stripped = field_name[len(owner_tag):]
        # camelCase 续接: "AccessKeyID" -> "accessKeyID"
        if stripped and "A" <= stripped[0] <= "Z":
            stripped = stripped[0].lower() + stripped[1:]

    parts = _LOWER_TO_UPPER.sub(r"\1-\2", stripped)
    parts = _ACRONYM_TO_WORD.sub(r"\1-\2", parts).lower()
    return f"{SECRET_NAMESPACE}-{owner_tag.lower()}-{parts}"


def is_valid_secret_name(name: str) -> bool:
    """检查名称是否只包含 [a-z0-9-]"""
    return bool(name) and _SECRET_NAME_RE.fullmatch(name) is not None
