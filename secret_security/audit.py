"""
迁移审计日志

每个被迁移的字段、每次扫描结果和每次密钥读取都记录为一条事件，
以 JSON Lines 追加到审计文件。配置签名密钥时逐条 HMAC-SHA256 签名。
事件中只出现字段路径和密钥名称，不出现密钥值。
"""

import json
import hmac
import hashlib
import getpass
import logging
from typing import Any, Optional
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"


class AuditEventType(str, Enum):
    SECRET_MIGRATED = "secret_migrated"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"
    MIGRATION_SKIPPED = "migration_skipped"
    SECRET_RESOLVED = "secret_resolved"


@dataclass
class AuditEvent:
    event_type: AuditEventType
    path: Optional[str] = None  # 设置中的字段路径，如 "s3.s3AccessKeyID"
    identifier: Optional[str] = None  # 密钥名称
    result: str = "success"
    details: dict[str, Any] = field(default_factory=dict)
    actor: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    signature: Optional[str] = None

    def to_json(self) -> str:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["timestamp"] = self.timestamp.isoformat()
        return json.dumps(data, ensure_ascii=False)

    @classmethod
    def from_json(cls, line: str) -> "AuditEvent":
        data = json.loads(line)
        data["event_type"] = AuditEventType(data["event_type"])
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)

    def sign(self, key: bytes) -> "AuditEvent":
        self.signature = self._digest(key)
        return self

    def verify(self, key: bytes) -> bool:
        return bool(self.signature) and hmac.compare_digest(self.signature, self._digest(key))

    def _digest(self, key: bytes) -> str:
        # 签名覆盖除 signature 以外的全部字段
        unsigned = json.loads(self.to_json())
        unsigned.pop("signature")
        payload = json.dumps(unsigned, sort_keys=True).encode()
        return hmac.new(key, payload, hashlib.sha256).hexdigest()


def _redact(details: dict[str, Any]) -> dict[str, Any]:
    """按键名屏蔽可能携带明文的 details 值"""
    redacted = {}
    for key, value in details.items():
        if any(word in key.lower() for word in AuditLogger.SENSITIVE_KEYS):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = _redact(value)
        else:
            redacted[key] = value
    return redacted


class AuditLogger:
    """
    迁移审计记录器

    事件保存在 events 中并进入写缓冲，flush() 时追加到 log_file。
    未指定 log_file 时只在内存中保留。
    """

    SENSITIVE_KEYS = ("password", "secret", "token", "credential", "value", "raw")

    def __init__(self, log_file: Optional[str | Path] = None, signing_key: Optional[bytes] = None):
        self.log_file = Path(log_file) if log_file else None
        self._signing_key = signing_key
        self._pending: list[AuditEvent] = []
        self.events: list[AuditEvent] = []

    def record(
        self,
        event_type: AuditEventType,
        path: Optional[str] = None,
        identifier: Optional[str] = None,
        result: str = "success",
        **details: Any,
    ) -> AuditEvent:
        event = AuditEvent(
            event_type=event_type,
            path=path,
            identifier=identifier,
            result=result,
            details=_redact(details),
            actor=_current_user(),
        )
        if self._signing_key:
            event.sign(self._signing_key)
        self.events.append(event)
        self._pending.append(event)
        return event

    def log_secret_migrated(self, path: str, identifier: str) -> None:
        self.record(AuditEventType.SECRET_MIGRATED, path, identifier)

    def log_migration_failed(self, path: str, identifier: str, error: Exception) -> None:
        self.record(AuditEventType.MIGRATION_FAILED, path, identifier, "failure", error=type(error).__name__)

    def log_migration_completed(self, paths: list[str]) -> None:
        self.record(AuditEventType.MIGRATION_COMPLETED, migrated=paths, count=len(paths))

    def log_migration_skipped(self, reason: str) -> None:
        self.record(AuditEventType.MIGRATION_SKIPPED, reason=reason)

    def log_secret_resolved(self, identifier: str, found: bool) -> None:
        self.record(AuditEventType.SECRET_RESOLVED, identifier=identifier, result="success" if found else "failure")

    def flush(self) -> None:
        if not self._pending or not self.log_file:
            self._pending.clear()
            return
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.writelines(event.to_json() + "\n" for event in self._pending)
        self._pending.clear()

    def read(
        self,
        event_type: Optional[AuditEventType] = None,
        path: Optional[str] = None,
    ) -> list[AuditEvent]:
        """
        读取审计文件

        无法解析的行被忽略；配置签名密钥时签名不符的事件也被忽略。
        """
        if not self.log_file or not self.log_file.exists():
            return []

        events = []
        for line in self.log_file.read_text(encoding="utf-8").splitlines():
            try:
                event = AuditEvent.from_json(line)
            except (ValueError, KeyError, TypeError) as e:
                logger.debug(f"Skipping unreadable audit line: {e}")
                continue
            if self._signing_key and not event.verify(self._signing_key):
                logger.warning(f"Audit event with bad signature: {event.event_type.value} {event.path}")
                continue
            if event_type and event.event_type != event_type:
                continue
            if path and event.path != path:
                continue
            events.append(event)
        return events


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"
