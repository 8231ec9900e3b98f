#!/usr/bin/env python3
"""
明文密钥迁移脚本

把设置文件中仍以明文保存的敏感字段迁移到密钥存储。
可以重复运行：已迁移的设置不会再次处理。

    python migrate_secrets.py data.json --vault file://secrets.enc
"""

import sys
import logging
import argparse
from typing import Optional

from secret_migration import (
    MigrationError,
    SecretMigrator,
    SettingsLoader,
    VaultError,
    create_vault,
    load_migration_config,
)
from secret_migration.settings import ConfigValidationError, SettingsFormatError
from secret_security import AuditLogger, setup_logging_with_sanitization

logger = logging.getLogger("migrate_secrets")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Move plaintext secrets from a settings file into a secret store.",
    )
    parser.add_argument("settings", help="settings file (.json / .yml / .yaml)")
    parser.add_argument("--vault", help="secret store URI (memory://, env://PREFIX, file://path)")
    parser.add_argument("--env-file", help=".env file with REMOTELY_SAVE_* options")
    parser.add_argument("--audit-log", help="append audit events to this file")
    parser.add_argument("--dry-run", action="store_true", help="list pending fields only")
    parser.add_argument(
        "--allow-ephemeral-store",
        action="store_true",
        help="allow memory:// and env:// stores, whose secrets are gone when this process exits",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging_with_sanitization(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = load_migration_config(args.env_file)
        if args.vault:
            config.vault_uri = args.vault
        if args.audit_log:
            config.audit_log = args.audit_log

        loader = SettingsLoader(args.settings)
        settings = loader.load()
    except (ConfigValidationError, SettingsFormatError) as e:
        print(f"❌ {e}")
        return 2

    if args.dry_run:
        entries = SecretMigrator().scan(settings)
        if not entries:
            print("✅ 没有需要迁移的明文密钥")
            return 0
        print(f"待迁移字段 ({len(entries)}):")
        for entry in entries:
            print(f"   {entry.path} -> {entry.identifier}")
        return 0

    try:
        store = create_vault(config)
    except (ConfigValidationError, VaultError) as e:
        print(f"❌ {e}")
        return 2

    # 非持久存储: 进程退出后密钥即丢失
    if not getattr(store, "persistent", True) and not args.allow_ephemeral_store:
        print(f"❌ {config.vault_uri} 不会持久保存密钥，请使用 file:// 或加 --allow-ephemeral-store")
        return 2

    audit = None
    if config.audit_log:
        audit = AuditLogger(config.audit_log, signing_key=config.audit_signing_key_bytes)

    migrator = SecretMigrator(store, audit_logger=audit)
    try:
        migrated = migrator.apply(settings)
    except MigrationError as e:
        # 保存已完成的部分，重新运行会继续剩余字段
        loader.save(settings)
        print(f"❌ 迁移中止: {e}")
        return 1
    finally:
        if audit:
            audit.flush()

    if migrated:
        loader.save(settings)
        print(f"✅ 迁移完成: {args.settings}")
    else:
        print("✅ 没有需要迁移的明文密钥")
    return 0


if __name__ == "__main__":
    sys.exit(main())
