"""
日志脱敏

迁移过程中 logger 可能接触到明文凭证，这里在输出前把它们遮住：
- 文本：AWS access key、SAS 签名、password=/secret= 赋值、URL 中的用户名密码
- 字典：字段表中列出的敏感字段名 (以及 password/token 等通用名称)
"""

import re
import logging
from typing import Any, Callable, Optional

from secret_migration.fields import SECRET_FIELD_MAP

logger = logging.getLogger(__name__)

MASK = "***"


def _partial(value: str, keep: int = 4) -> str:
    """保留首 3 位和末 keep 位，过短时整体遮盖"""
    if len(value) <= keep * 2:
        return MASK
    return f"{value[:3]}{MASK}{value[-keep:]}"


# (pattern, 替换) 按顺序应用；替换为字符串时使用 re.sub 的分组引用
TEXT_RULES: list[tuple[re.Pattern, str | Callable[[re.Match], str]]] = [
    (re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"), lambda m: _partial(m.group(0))),
    (re.compile(r"(sig=)[^&\s'\"]+", re.IGNORECASE), rf"\g<1>{MASK}"),
    (
        re.compile(r"(passw(?:or)?d)(['\"]?\s*[:=]\s*['\"]?)[^\s'\",}]{4,}", re.IGNORECASE),
        rf"\g<1>\g<2>{MASK}",
    ),
    (
        re.compile(r"(secret\w*?)(['\"]?\s*[:=]\s*['\"]?)[^\s'\",}]{8,}", re.IGNORECASE),
        rf"\g<1>\g<2>{MASK}",
    ),
    (
        re.compile(r"\b((?:https?|redis|webdav)://)[^\s'\"/:@]+:[^\s'\"@]+@", re.IGNORECASE),
        rf"\g<1>{MASK}:{MASK}@",
    ),
]

GENERIC_SENSITIVE_NAMES = ("password", "secret", "token", "raw_value", "sasurl")


def _table_field_names() -> set[str]:
    return {dotpath.rsplit(".", 1)[-1].lower() for dotpath in SECRET_FIELD_MAP}


class LogSanitizer:
    """
    日志脱敏器

    Args:
        partial: True 时 AWS key 之类的字典值保留首尾几位，便于排查
        extra_fields: 额外视为敏感的字段名 (大小写不敏感)
    """

    def __init__(self, partial: bool = True, extra_fields: tuple[str, ...] = ()):
        self.partial = partial
        self._exact = _table_field_names() | {name.lower() for name in extra_fields}

    def sanitize_string(self, text: str) -> str:
        for pattern, replacement in TEXT_RULES:
            text = pattern.sub(replacement, text)
        return text

    def sanitize_dict(self, data: dict) -> dict:
        return {
            key: self._mask_value(value) if self.is_sensitive(str(key)) else self.sanitize(value)
            for key, value in data.items()
        }

    def sanitize(self, data: Any) -> Any:
        if isinstance(data, str):
            return self.sanitize_string(data)
        if isinstance(data, dict):
            return self.sanitize_dict(data)
        if isinstance(data, (list, tuple)):
            return type(data)(self.sanitize(item) for item in data)
        return data

    def is_sensitive(self, key: str) -> bool:
        normalized = key.lower().replace("-", "_")
        if normalized in self._exact:
            return True
        return any(name in normalized for name in GENERIC_SENSITIVE_NAMES)

    def _mask_value(self, value: Any) -> Any:
        # 空值不是密钥，原样保留便于看出字段未配置
        if not value:
            return value
        return _partial(str(value)) if self.partial else MASK


_default_sanitizer = LogSanitizer()


def sanitize_dict(data: dict) -> dict:
    return _default_sanitizer.sanitize_dict(data)


def sanitize_string(text: str) -> str:
    return _default_sanitizer.sanitize_string(text)


class SanitizingFilter(logging.Filter):
    """在 handler 输出前脱敏 msg 和 args"""

    def __init__(self, sanitizer: Optional[LogSanitizer] = None):
        super().__init__()
        self._sanitizer = sanitizer or _default_sanitizer

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._sanitizer.sanitize_string(record.msg)
        if isinstance(record.args, dict):
            record.args = self._sanitizer.sanitize_dict(record.args)
        elif record.args:
            record.args = tuple(self._sanitizer.sanitize(arg) for arg in record.args)
        return True


_installed_handler: Optional[logging.Handler] = None


def setup_logging_with_sanitization(
    level: int = logging.INFO,
    sanitizer: Optional[LogSanitizer] = None,
) -> logging.Handler:
    """
    给根 logger 安装一个带脱敏过滤器的 StreamHandler

    重复调用会替换之前安装的 handler，不会重复输出。
    """
    global _installed_handler

    root = logging.getLogger()
    root.setLevel(level)
    if _installed_handler is not None:
        root.removeHandler(_installed_handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(SanitizingFilter(sanitizer))
    root.addHandler(handler)

    _installed_handler = handler
    logger.debug("Log sanitization enabled")
    return handler
