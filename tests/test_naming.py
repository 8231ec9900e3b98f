"""
密钥名称派生与字段表测试
"""

import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from secret_migration.naming import derive_secret_name, is_valid_secret_name
from secret_migration.fields import (
    SECRET_FIELD_MAP,
    SECRET_FIELD_OWNERS,
    SECRET_FIELDS,
    FieldPath,
    FieldTableError,
    build_field_table,
    validate_field_table,
)

SAMPLE_INPUTS = [
    ("s3", "s3AccessKeyID"),
    ("s3", "s3SecretAccessKey"),
    ("webdav", "username"),
    ("webdav", "password"),
    ("azure", "containerSasUrl"),
    ("e2e", "password"),
    ("S3", "s3Region"),
    ("onedrive", "refreshToken"),
    ("x", "parseHTTPResponse"),
    ("dropbox", "dropboxAccessToken2"),
]


class TestDeriveSecretName:
    """测试密钥名称派生"""

    def test_strips_owner_prefix(self):
        """字段名以 owner 开头时去掉前缀"""
        assert derive_secret_name("s3", "s3AccessKeyID") == "remotely-save-s3-access-key-id"

    def test_simple_field(self):
        assert derive_secret_name("webdav", "password") == "remotely-save-webdav-password"

    def test_owner_not_prefix(self):
        """owner 不是前缀时整个字段名参与转换"""
        assert derive_secret_name("azure", "containerSasUrl") == "remotely-save-azure-container-sas-url"

    def test_prefix_match_is_case_insensitive(self):
        assert derive_secret_name("S3", "s3Region") == "remotely-save-s3-region"

    def test_acronym_kept_together(self):
        assert derive_secret_name("x", "parseHTTPResponse") == "remotely-save-x-parse-http-response"
        assert derive_secret_name("s3", "s3SecretAccessKey") == "remotely-save-s3-secret-access-key"

    def test_field_equal_to_owner_degenerates(self):
        """字段名等于 owner 时结果以 - 结尾，不报错"""
        assert derive_secret_name("s3", "s3") == "remotely-save-s3-"

    def test_only_ascii_uppercase_starts_camel_case(self):
        """非 ASCII 大写字母 (如开尔文符号 U+212A) 不当作 camelCase 续接"""
        assert derive_secret_name("s3", "s3\u212aB") == "remotely-save-s3-kb"
        assert derive_secret_name("s3", "s3Éclair") == "remotely-save-s3-éclair"

    def test_deterministic(self):
        for owner, field in SAMPLE_INPUTS:
            assert derive_secret_name(owner, field) == derive_secret_name(owner, field)

    def test_charset(self):
        for owner, field in SAMPLE_INPUTS:
            assert re.fullmatch(r"[a-z0-9-]+", derive_secret_name(owner, field))


class TestIsValidSecretName:

    def test_valid(self):
        assert is_valid_secret_name("remotely-save-e2e-password") is True

    @pytest.mark.parametrize("name", ["", "Remotely-save", "remotely_save", "a b", "x\n"])
    def test_invalid(self, name):
        assert is_valid_secret_name(name) is False


class TestFieldTable:
    """测试固定字段表"""

    def test_contains_all_8_fields(self):
        assert len(SECRET_FIELD_MAP) == 8
        assert len(SECRET_FIELDS) == 8

    def test_known_entries(self):
        assert SECRET_FIELD_MAP["s3.s3AccessKeyID"] == "remotely-save-s3-access-key-id"
        assert SECRET_FIELD_MAP["password"] == "remotely-save-e2e-password"

    def test_order(self):
        assert [f.path.dotpath for f in SECRET_FIELDS] == list(SECRET_FIELD_MAP)

    def test_pinned_table_matches_derivation(self):
        """固定表与派生算法的结果一致"""
        assert build_field_table(SECRET_FIELD_OWNERS) == dict(SECRET_FIELD_MAP)

    def test_read_only(self):
        with pytest.raises(TypeError):
            SECRET_FIELD_MAP["extra"] = "remotely-save-extra"

    def test_identifiers_are_unique_and_valid(self):
        identifiers = [f.identifier for f in SECRET_FIELDS]
        assert len(set(identifiers)) == len(identifiers)
        assert all(is_valid_secret_name(i) for i in identifiers)

    def test_duplicate_identifier_rejected(self):
        with pytest.raises(FieldTableError):
            validate_field_table({"a.x": "remotely-save-a-x", "b.x": "remotely-save-a-x"})

    def test_invalid_identifier_rejected(self):
        with pytest.raises(FieldTableError):
            validate_field_table({"a.x": "Remotely_Save"})


class TestFieldPath:
    """测试字段路径解析和读写"""

    def test_parse(self):
        assert FieldPath.parse("s3.s3AccessKeyID") == FieldPath(field="s3AccessKeyID", provider="s3")
        assert FieldPath.parse("password") == FieldPath(field="password")

    @pytest.mark.parametrize("dotpath", ["a.b.c", "", ".x", "x."])
    def test_malformed(self, dotpath):
        with pytest.raises(FieldTableError):
            FieldPath.parse(dotpath)

    def test_get_missing_defaults_to_empty(self):
        assert FieldPath.parse("webdav.password").get({}) == ""
        assert FieldPath.parse("webdav.password").get({"webdav": {}}) == ""
        assert FieldPath.parse("password").get({}) == ""

    def test_set_on_mapping(self):
        settings = {"s3": {"s3AccessKeyID": "AKIA"}}
        FieldPath.parse("s3.s3AccessKeyID").set(settings, "ref")
        FieldPath.parse("webdav.username").set(settings, "bob")
        assert settings == {"s3": {"s3AccessKeyID": "ref"}, "webdav": {"username": "bob"}}

    def test_str(self):
        assert str(FieldPath.parse("s3.s3AccessKeyID")) == "s3.s3AccessKeyID"
