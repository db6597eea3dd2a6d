"""Shared pytest fixtures for frpc site management tests."""

from unittest.mock import Mock

import pytest
import requests

from frpc_sites.config import SyncSettings
from frpc_sites.models import ProxyConfig, Site
from frpc_sites.registry import SiteRegistry

SAMPLE_CONFIG = """[common]
server_addr = frp.example.com
server_port = 7000
admin_port = 7400

# DEVICE_REGISTRY_START
# E721EE345A01|DC001|苏州站|pw1|测试,在线
# E721EE345A02|DC002|北京站|pw2|
# E721EE345A03|DC003||pw3|备用
# DEVICE_REGISTRY_END

[R-E721EE345A01-22]
type = stcp
role = visitor
sk = E721EE345A01
server_name = R-E721EE345A01-22
bind_addr = 0.0.0.0
bind_port = 18015

[R-E721EE345A01-3306]
type = stcp
role = visitor
sk = E721EE345A01
server_name = R-E721EE345A01-3306
bind_addr = 0.0.0.0
bind_port = 18016

[R-E721EE345A02-22]
type = stcp
role = visitor
sk = E721EE345A02
server_name = R-E721EE345A02-22
bind_addr = 127.0.0.1
bind_port = 18017

[web]
type = http
local_port = 8080
custom_domains = web.example.com
"""


def make_site(
    mac_address: str,
    site_code: str = "",
    bind_ports: tuple[int, ...] = (),
    tags: list[str] | None = None,
    prefix: str = "R",
) -> Site:
    """Build a site with one proxy per bind port, service ports 22, 3306, 5000..."""
    service_ports = [22, 3306, 5000, 8080, 9000]
    configs = []
    for service_port, bind_port in zip(service_ports, bind_ports):
        name = f"{prefix}-{mac_address}-{service_port}"
        configs.append(
            ProxyConfig(name=name, server_name=name, sk=mac_address, bind_port=bind_port)
        )
    return Site(
        mac_address=mac_address,
        site_code=site_code,
        tags=tags or [],
        configs=configs,
    )


def make_response(
    status_code: int = 200,
    text: str = "",
    content_type: str = "text/plain",
    reason: str = "OK",
) -> requests.Response:
    """Create a real requests.Response carrying UTF-8 encoded text."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    response._content = text.encode("utf-8")
    response.headers["Content-Type"] = content_type
    return response


@pytest.fixture
def sample_config() -> str:
    return SAMPLE_CONFIG


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(base_url="http://127.0.0.1:7400/", timeout=2.0)


@pytest.fixture
def registry(settings) -> SiteRegistry:
    """Empty registry using the default port range."""
    return SiteRegistry(settings=settings)


@pytest.fixture
def populated_registry(settings) -> SiteRegistry:
    """Registry with three sites; bind ports 18000-18004 are in use."""
    registry = SiteRegistry(settings=settings)
    registry.add_site(make_site("AA0000000001", "S001", (18000, 18001, 18002), ["测试"]))
    registry.add_site(make_site("AA0000000002", "S002", (18003,), ["在线", "测试"]))
    registry.add_site(make_site("AA0000000003", "S003", (18004,)))
    return registry


@pytest.fixture
def mock_session():
    """Mock requests.Session whose request/head calls return 200 responses.

    Returns:
        Mock: Session with ``request`` and ``head`` preconfigured
    """
    session = Mock(spec=requests.Session)
    session.request.return_value = make_response()
    session.head.return_value = make_response()
    return session
