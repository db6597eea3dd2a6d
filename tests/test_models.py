"""Tests for site and configuration models."""

import pytest
from pydantic import ValidationError

from frpc_sites.models import Device, ParsedConfig, ProxyConfig, Site, SiteUpdate


class TestDevice:
    """Test Device validation."""

    def test_name_defaults_to_code(self):
        assert Device(mac_address="AA", site_code="S1").site_name == "S1"

    def test_name_defaults_to_mac(self):
        assert Device(mac_address="AA", site_name="  ").site_name == "AA"

    def test_strips_whitespace(self):
        device = Device(mac_address=" AA ", site_code=" S1 ", site_name="苏州站 ")

        assert device.mac_address == "AA"
        assert device.site_code == "S1"
        assert device.site_name == "苏州站"

    def test_tags_are_trimmed(self):
        assert Device(mac_address="AA", tags=[" 测试 ", "", "在线"]).tags == ["测试", "在线"]

    @pytest.mark.parametrize(
        "field, value",
        [
            ("site_name", "a|b"),
            ("password", "line\nbreak"),
            ("site_code", "x\r"),
        ],
    )
    def test_registry_delimiters_rejected(self, field, value):
        """Values that would corrupt the registry line are refused"""
        with pytest.raises(ValidationError):
            Device(mac_address="AA", **{field: value})

    def test_comma_in_tag_rejected(self):
        with pytest.raises(ValidationError):
            Device(mac_address="AA", tags=["a,b"])

    def test_empty_mac_rejected(self):
        with pytest.raises(ValidationError):
            Device(mac_address="   ")


class TestProxyConfig:
    """Test ProxyConfig defaults and helpers."""

    def test_defaults(self):
        proxy = ProxyConfig(name="R-AA-22", sk="AA")

        assert proxy.type == "stcp"
        assert proxy.role == "visitor"
        assert proxy.bind_addr == "0.0.0.0"
        assert proxy.bind_port == 0
        assert proxy.is_pending

    def test_service_port(self):
        assert ProxyConfig(name="R-E721EE345A01-3306").service_port == 3306
        assert ProxyConfig(name="custom").service_port is None
        assert ProxyConfig(name="R-AA-ssh").service_port is None

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_bind_port_range(self, port):
        with pytest.raises(ValidationError):
            ProxyConfig(name="p", bind_port=port)

    def test_name_cannot_break_section_header(self):
        with pytest.raises(ValidationError):
            ProxyConfig(name="a]b")

    def test_extra_cannot_shadow_fields(self):
        with pytest.raises(ValidationError):
            ProxyConfig(name="p", extra={"bind_port": "1"})

    def test_section_items_order(self):
        """Known fields come first, extras after in insertion order"""
        proxy = ProxyConfig(
            name="p", sk="AA", bind_port=18000, extra={"use_encryption": "true", "name": "x"}
        )

        assert [key for key, _ in proxy.section_items()] == [
            "type",
            "role",
            "sk",
            "server_name",
            "bind_addr",
            "bind_port",
            "use_encryption",
            "name",
        ]
        assert dict(proxy.section_items())["bind_port"] == "18000"


class TestSite:
    """Test Site ownership and conversions."""

    def test_round_trip_device(self):
        device = Device(mac_address="AA", site_code="S1", password="pw", tags=["x"])
        site = Site.from_device(device, [ProxyConfig(name="R-AA-22", sk="AA", bind_port=18000)])

        assert site.to_device() == device
        assert site.bind_ports == [18000]

    def test_bind_ports_skip_pending(self):
        site = Site(
            mac_address="AA",
            configs=[
                ProxyConfig(name="a", sk="AA", bind_port=0),
                ProxyConfig(name="b", sk="AA", bind_port=18001),
            ],
        )

        assert site.bind_ports == [18001]

    def test_foreign_sk_rejected(self):
        with pytest.raises(ValidationError):
            Site(mac_address="AA", configs=[ProxyConfig(name="a", sk="BB")])


class TestMisc:
    """Test SiteUpdate and ParsedConfig."""

    def test_site_update_forbids_unknown(self):
        with pytest.raises(ValidationError):
            SiteUpdate(colour="red")

    def test_site_update_tracks_set_fields(self):
        assert SiteUpdate(site_name="x").model_dump(exclude_unset=True) == {"site_name": "x"}

    def test_parsed_config_is_empty(self):
        assert ParsedConfig().is_empty
        assert not ParsedConfig(common={"server_port": "7000"}).is_empty
