"""INI transcoder for frpc configuration files.

Converts frpc INI text, including the ``# DEVICE_REGISTRY_START`` /
``# DEVICE_REGISTRY_END`` comment block that carries site metadata, into a
ParsedConfig and back. Parsing never raises: malformed lines are skipped and
recorded as ParseWarning entries.
"""

from pydantic import ValidationError

from .common.logging import get_logger
from .models import (
    PROXY_FIELDS,
    STCP_TYPE,
    VISITOR_ROLE,
    DEFAULT_BIND_ADDR,
    Device,
    OtherSection,
    ParsedConfig,
    ParseWarning,
    ProxyConfig,
    Site,
)
from .utils import MAX_PORT, parse_int_prefix

logger = get_logger(__name__)

DEVICE_REGISTRY_START = "# DEVICE_REGISTRY_START"
DEVICE_REGISTRY_END = "# DEVICE_REGISTRY_END"
COMMON_SECTION = "common"

MIN_DEVICE_FIELDS = 2


class _ParseState:
    """Accumulator threaded through a single parse() call."""

    def __init__(self) -> None:
        self.result = ParsedConfig()
        self.section: str | None = None
        self.section_line = 0
        self.values: dict[str, str] = {}
        self.in_registry = False

    def warn(self, line_number: int, line: str, reason: str) -> None:
        self.result.warnings.append(
            ParseWarning(line_number=line_number, line=line, reason=reason)
        )
        logger.warning("Skipping config line", line_number=line_number, reason=reason)


def parse(content: str) -> ParsedConfig:
    """Parse frpc INI text into a ParsedConfig.

    Args:
        content: Raw INI text

    Returns:
        Structured configuration; empty or non-INI input gives an empty result
    """
    state = _ParseState()

    for line_number, raw_line in enumerate((content or "").splitlines(), start=1):
        line = raw_line.strip()

        if not line:
            continue

        if line == DEVICE_REGISTRY_START:
            state.in_registry = True
            continue
        if line == DEVICE_REGISTRY_END:
            state.in_registry = False
            continue

        if state.in_registry and line.startswith("# ") and "|" in line:
            device = _parse_device_entry(line[2:], line_number, line, state)
            if device is not None:
                state.result.devices.append(device)
            continue

        if line.startswith("#") or line.startswith(";"):
            continue

        if line.startswith("[") and line.endswith("]"):
            _flush_section(state)
            name = line[1:-1].strip()
            if not name:
                state.warn(line_number, line, "empty section name")
                state.section = None
            else:
                state.section = name
            state.section_line = line_number
            state.values = {}
            continue

        if "=" in line:
            if state.section is None:
                state.warn(line_number, line, "key/value outside of a section")
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            if not key:
                state.warn(line_number, line, "missing key")
                continue
            state.values[key] = value.strip()
            continue

        state.warn(line_number, line, "not a key/value pair")

    _flush_section(state)

    result = state.result
    logger.debug(
        "Parsed frpc config",
        devices=len(result.devices),
        stcp_configs=len(result.stcp_configs),
        other_sections=len(result.other_sections),
        warnings=len(result.warnings),
    )
    return result


def generate(config: ParsedConfig) -> str:
    """Serialize a ParsedConfig to canonical frpc INI text.

    Output order is [common], the device registry block, stcp sections in list
    order, then the other sections; the same input always gives the same text.
    """
    lines: list[str] = []

    if config.common:
        lines.append(f"[{COMMON_SECTION}]")
        lines.extend(f"{key} = {value}" for key, value in config.common.items())
        lines.append("")

    if config.devices:
        lines.append(DEVICE_REGISTRY_START)
        lines.extend(format_device_entry(device) for device in config.devices)
        lines.append(DEVICE_REGISTRY_END)
        lines.append("")

    for proxy in config.stcp_configs:
        lines.append(f"[{proxy.name}]")
        lines.extend(f"{key} = {value}" for key, value in proxy.section_items())
        lines.append("")

    for section in config.other_sections:
        lines.append(f"[{section.name}]")
        lines.extend(f"{key} = {value}" for key, value in section.config.items())
        lines.append("")

    return "\n".join(lines)


def group_configs_by_site(
    stcp_configs: list[ProxyConfig],
    devices: list[Device],
    *,
    seed_devices: bool = True,
) -> list[Site]:
    """Group proxy configs into sites by matching ``sk`` to a device MAC address.

    Args:
        stcp_configs: Proxy configs in file order
        devices: Device registry entries
        seed_devices: Start with one site per registered device, so devices
            without proxies are kept. When False only MAC addresses seen on a
            proxy produce a site, in first-seen order.

    Returns:
        Sites with deep-copied proxy configs. A proxy whose ``sk`` matches no
        device gets a placeholder site named after the ``sk``.
    """
    known: dict[str, Device] = {}
    groups: dict[str, Site] = {}

    for device in devices:
        if device.mac_address in known:
            logger.warning(
                "Ignoring duplicate device registry entry", mac_address=device.mac_address
            )
            continue
        known[device.mac_address] = device
        if seed_devices:
            groups[device.mac_address] = Site.from_device(device)

    for proxy in stcp_configs:
        mac_address = proxy.sk
        if not mac_address:
            logger.warning("Skipping proxy config without sk", name=proxy.name)
            continue

        site = groups.get(mac_address)
        if site is None:
            device = known.get(mac_address)
            try:
                if device is None:
                    device = Device(
                        mac_address=mac_address, site_code=mac_address, site_name=mac_address
                    )
                    logger.info("Creating placeholder site for orphaned proxy", name=proxy.name)
                site = Site.from_device(device)
            except ValidationError as e:
                logger.warning("Skipping proxy config with unusable sk", name=proxy.name, error=str(e))
                continue
            groups[mac_address] = site

        site.configs.append(proxy.model_copy(deep=True))

    return list(groups.values())


def format_device_entry(device: Device) -> str:
    """Format one device registry line: ``# MAC|code|name|password|tag1,tag2``."""
    tags = ",".join(device.tags)
    return f"# {device.mac_address}|{device.site_code}|{device.site_name}|{device.password}|{tags}"


def _parse_device_entry(
    entry: str, line_number: int, line: str, state: _ParseState
) -> Device | None:
    parts = [part.strip() for part in entry.split("|")]
    if len(parts) < MIN_DEVICE_FIELDS or not parts[0]:
        state.warn(line_number, line, "device record needs at least MAC address and site code")
        return None

    def field(index: int) -> str:
        return parts[index] if len(parts) > index else ""

    tags = [tag.strip() for tag in field(4).split(",") if tag.strip()]
    try:
        return Device(
            mac_address=parts[0],
            site_code=field(1),
            site_name=field(2),
            password=field(3),
            tags=tags,
        )
    except ValidationError as e:
        state.warn(line_number, line, f"invalid device record: {e.error_count()} error(s)")
        return None


def _flush_section(state: _ParseState) -> None:
    name = state.section
    values = state.values
    if name is None or not values:
        return

    result = state.result
    if name == COMMON_SECTION:
        result.common.update(values)
    elif values.get("type") == STCP_TYPE:
        proxy = _build_proxy(name, values, state)
        if proxy is not None:
            result.stcp_configs.append(proxy)
        else:
            # Unusable as a proxy; pass the section through untouched
            result.other_sections.append(OtherSection(name=name, config=dict(values)))
    else:
        result.other_sections.append(OtherSection(name=name, config=dict(values)))

    state.values = {}


def _build_proxy(name: str, values: dict[str, str], state: _ParseState) -> ProxyConfig | None:
    raw_port = values.get("bind_port", "")
    bind_port = parse_int_prefix(raw_port)
    if raw_port and not 0 <= bind_port <= MAX_PORT:
        state.warn(state.section_line, f"[{name}]", f"bind_port '{raw_port}' out of range")
        bind_port = 0
    elif raw_port and bind_port == 0 and not raw_port.strip().startswith("0"):
        state.warn(state.section_line, f"[{name}]", f"bind_port '{raw_port}' is not a number")

    try:
        return ProxyConfig(
            name=name,
            type=values.get("type") or STCP_TYPE,
            role=values.get("role") or VISITOR_ROLE,
            sk=values.get("sk", ""),
            server_name=values.get("server_name", ""),
            bind_addr=values.get("bind_addr") or DEFAULT_BIND_ADDR,
            bind_port=bind_port,
            extra={key: value for key, value in values.items() if key not in PROXY_FIELDS},
        )
    except ValidationError as e:
        state.warn(
            state.section_line,
            f"[{name}]",
            f"invalid proxy section kept as plain section: {e.error_count()} error(s)",
        )
        return None
