"""
安全模块

提供迁移审计和日志脱敏功能
"""

from .audit import AuditLogger, AuditEvent, AuditEventType
from .sanitizer import LogSanitizer, SanitizingFilter, sanitize_dict, sanitize_string, setup_logging_with_sanitization

__all__ = [
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "LogSanitizer",
    "SanitizingFilter",
    "sanitize_dict",
    "sanitize_string",
    "setup_logging_with_sanitization",
]
