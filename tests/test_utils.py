"""Tests for utility functions."""

import pytest

from frpc_sites.utils import (
    MAX_PORT,
    MIN_PORT,
    extract_service_port,
    make_proxy_name,
    mask_sensitive_data,
    normalize_mac,
    parse_int_prefix,
    rename_proxy_mac,
    sanitize_log_data,
    validate_port,
    validate_registry_text,
)


class TestValidatePort:
    """Test port validation function."""

    def test_valid_ports(self):
        validate_port(1, "Test port")
        validate_port(18000, "Bind port")
        validate_port(65535, "Max port")

    @pytest.mark.parametrize("port", [0, 65536, -1, "80", 80.5, True])
    def test_invalid_ports(self, port):
        """Out of range and non-integer ports are rejected"""
        with pytest.raises(ValueError, match="Test port must be between 1 and 65535"):
            validate_port(port, "Test port")  # type: ignore[arg-type]


class TestRegistryText:
    """Test validate_registry_text()."""

    def test_plain_text(self):
        assert validate_registry_text("苏州站 1", "Name") == "苏州站 1"

    @pytest.mark.parametrize("value", ["a|b", "a\nb", "a\rb"])
    def test_delimiters_rejected(self, value):
        with pytest.raises(ValueError, match="Name cannot contain"):
            validate_registry_text(value, "Name")


class TestNormalizeMac:
    """Test MAC address normalization."""

    @pytest.mark.parametrize(
        "value",
        ["e7:21:ee:34:5a:01", "E7-21-EE-34-5A-01", "e721.ee34.5a01", " E721EE345A01 "],
    )
    def test_separator_styles(self, value):
        assert normalize_mac(value) == "E721EE345A01"

    @pytest.mark.parametrize("value", ["", "E721EE345A", "E721EE345A0G", "E721EE345A0101"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid MAC address"):
            normalize_mac(value)


class TestParseIntPrefix:
    """Test parse_int_prefix()."""

    @pytest.mark.parametrize(
        "value, expected",
        [("18015", 18015), (" 18015 # ssh", 18015), ("18015abc", 18015), ("-5", -5)],
    )
    def test_leading_integer(self, value, expected):
        assert parse_int_prefix(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "  "])
    def test_default(self, value):
        assert parse_int_prefix(value) == 0
        assert parse_int_prefix(value, default=7) == 7


class TestProxyNames:
    """Test proxy name helpers."""

    def test_make_proxy_name(self):
        assert make_proxy_name("R", "E721EE345A01", 22) == "R-E721EE345A01-22"

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("R-E721EE345A01-22", 22),
            ("A-B-C-3306", 3306),
            ("E721EE345A01-22", None),
            ("R-E721EE345A01-ssh", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_service_port(self, name, expected):
        assert extract_service_port(name) == expected

    def test_rename_proxy_mac(self):
        assert rename_proxy_mac("R-AA-22", "AA", "BB") == "R-BB-22"

    def test_rename_leaves_other_names(self):
        """Names without the MAC segment are kept"""
        assert rename_proxy_mac("custom-ssh", "AA", "BB") == "custom-ssh"
        assert rename_proxy_mac("R-AAA-22", "AA", "BB") == "R-AAA-22"


class TestMaskSensitiveData:
    """Test sensitive data masking function."""

    def test_mask_normal_data(self):
        assert mask_sensitive_data("secret123456") == "********3456"
        assert mask_sensitive_data("token_abcdef", show_chars=6) == "******abcdef"

    def test_mask_short_data(self):
        assert mask_sensitive_data("ab") == "**"
        assert mask_sensitive_data("abc", show_chars=4) == "***"

    def test_mask_none_data(self):
        assert mask_sensitive_data(None) == "<None>"
        assert mask_sensitive_data("") == "<None>"


class TestSanitizeLogData:
    """Test log data sanitization function."""

    def test_sanitize_sensitive_fields(self):
        """Passwords and the stcp shared secret are masked"""
        data = {
            "site_code": "S001",
            "password": "mypassword",
            "sk": "E721EE345A01",
            "auth_token": "secret123456",
        }

        sanitized = sanitize_log_data(data)

        assert sanitized["site_code"] == "S001"
        assert sanitized["password"] == "******word"
        assert sanitized["sk"] == "********5A01"
        assert sanitized["auth_token"] == "********3456"

    def test_case_insensitive_detection(self):
        sanitized = sanitize_log_data({"Secret": "mypassword", "SK": "AABBCCDD"})

        assert sanitized["Secret"] == "******word"
        assert sanitized["SK"] == "****CCDD"

    def test_no_sensitive_fields(self):
        data = {"site_code": "S001", "bind_port": 18000}

        assert sanitize_log_data(data) == data


class TestConstants:
    """Test module constants."""

    def test_port_constants(self):
        assert MIN_PORT == 1
        assert MAX_PORT == 65535
