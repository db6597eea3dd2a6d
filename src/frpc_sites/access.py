"""Connection shortcuts for the services a site exposes through its proxies."""

from pydantic import BaseModel

from .models import ProxyConfig, Site

SSH_PORT = 22
MYSQL_PORT = 3306
WEB_PORT = 5000

SERVICE_NAMES = {
    22: "SSH",
    80: "HTTP",
    443: "HTTPS",
    3306: "MySQL",
    5000: "Web",
    8080: "HTTP-Alt",
    9000: "Web-Alt",
}


class ServiceEndpoint(BaseModel):
    """How to reach one service of a site through its local bind port."""

    service_name: str
    service_port: int
    bind_port: int
    config_name: str
    command: str | None = None
    url: str | None = None


def service_name(port: int) -> str:
    return SERVICE_NAMES.get(port, f"Port-{port}")


def find_config_by_service_port(site: Site, service_port: int) -> ProxyConfig | None:
    """Return the proxy whose name ends in service_port, if any."""
    for config in site.configs:
        if config.service_port == service_port:
            return config
    return None


def _bound_port(site: Site, service_port: int) -> int | None:
    config = find_config_by_service_port(site, service_port)
    if config is None or config.is_pending:
        return None
    return config.bind_port


def _ssh(port: int, host: str, username: str) -> str:
    return f"ssh -p {port} {username}@{host}"


def _mysql(port: int, host: str, username: str) -> str:
    return f"mysql -h {host} -P {port} -u {username} -p"


def ssh_command(site: Site, host: str, username: str = "root") -> str | None:
    port = _bound_port(site, SSH_PORT)
    return None if port is None else _ssh(port, host, username)


def mysql_command(site: Site, host: str, username: str = "root") -> str | None:
    port = _bound_port(site, MYSQL_PORT)
    return None if port is None else _mysql(port, host, username)


def web_url(site: Site, host: str, scheme: str = "http") -> str | None:
    port = _bound_port(site, WEB_PORT)
    return None if port is None else f"{scheme}://{host}:{port}"


def connection_info(site: Site, host: str, username: str = "root") -> list[ServiceEndpoint]:
    """Endpoints for every proxy with a service port and an assigned bind port.

    SSH and MySQL proxies get a shell command, everything else a URL
    (https for service port 443). Sorted by service port.
    """
    endpoints = []
    for config in site.configs:
        port = config.service_port
        if port is None or config.is_pending:
            continue

        endpoint = ServiceEndpoint(
            service_name=service_name(port),
            service_port=port,
            bind_port=config.bind_port,
            config_name=config.name,
        )
        if port == SSH_PORT:
            endpoint.command = _ssh(config.bind_port, host, username)
        elif port == MYSQL_PORT:
            endpoint.command = _mysql(config.bind_port, host, username)
        else:
            scheme = "https" if port == 443 else "http"
            endpoint.url = f"{scheme}://{host}:{config.bind_port}"
        endpoints.append(endpoint)

    return sorted(endpoints, key=lambda endpoint: endpoint.service_port)
