"""Site and frpc configuration models.

A Site is a Device (the identity metadata kept in the device registry comment
block) plus the stcp visitor proxies whose ``sk`` carries the device's MAC
address. ParsedConfig is the structured form of a whole frpc INI file.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import extract_service_port, validate_registry_text

STCP_TYPE = "stcp"
VISITOR_ROLE = "visitor"
DEFAULT_BIND_ADDR = "0.0.0.0"

# Keys of an stcp section that map onto ProxyConfig fields, in output order
PROXY_FIELDS = ("type", "role", "sk", "server_name", "bind_addr", "bind_port")


class Device(BaseModel):
    """Identity metadata for one remote site, keyed by MAC address."""

    model_config = ConfigDict(str_strip_whitespace=True)

    mac_address: str = Field(min_length=1, description="Primary key, 12 hex characters")
    site_code: str = Field(default="", description="Operator-assigned short identifier")
    site_name: str = Field(default="", description="Human readable label")
    password: str = Field(default="", description="Opaque, stored in plaintext")
    tags: list[str] = Field(default_factory=list, description="Tags in insertion order")

    @model_validator(mode="before")
    @classmethod
    def default_site_name(cls, data: Any) -> Any:
        """Fall back to the site code, then the MAC address, for a missing name."""
        if isinstance(data, dict):
            name = data.get("site_name")
            if not name or not str(name).strip():
                data = dict(data)
                data["site_name"] = data.get("site_code") or data.get("mac_address") or ""
        return data

    @field_validator("mac_address", "site_code", "site_name", "password")
    @classmethod
    def validate_registry_field(cls, v: str) -> str:
        return validate_registry_text(v, "Device field")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        tags = []
        for tag in v:
            tag = validate_registry_text(tag.strip(), "Tag")
            if "," in tag:
                raise ValueError("Tag cannot contain ','")
            if tag:
                tags.append(tag)
        return tags


class ProxyConfig(BaseModel):
    """One stcp visitor section: a local bind port mapped to a remote service."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, description="Section name, <prefix>-<mac>-<service port>")
    type: str = Field(default=STCP_TYPE, description="Tunnel mode")
    role: str = Field(default=VISITOR_ROLE, description="Tunnel role")
    sk: str = Field(default="", description="Shared secret, the owning site's MAC address")
    server_name: str = Field(default="", description="Remote service identifier")
    bind_addr: str = Field(default=DEFAULT_BIND_ADDR, description="Local bind interface")
    bind_port: int = Field(
        default=0, ge=0, le=65535, description="Local bind port, 0 means allocate on save"
    )
    extra: dict[str, str] = Field(
        default_factory=dict, description="Additional section keys, kept in order"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if any(char in v for char in "[]\n\r"):
            raise ValueError("Proxy name cannot contain brackets or line breaks")
        return v

    @field_validator("extra")
    @classmethod
    def validate_extra(cls, v: dict[str, str]) -> dict[str, str]:
        clashing = [key for key in v if key in PROXY_FIELDS]
        if clashing:
            raise ValueError(f"Extra keys clash with proxy fields: {', '.join(clashing)}")
        return v

    @property
    def service_port(self) -> int | None:
        """Service port embedded as the last segment of the proxy name."""
        return extract_service_port(self.name)

    @property
    def is_pending(self) -> bool:
        """True while the bind port is still the unassigned sentinel."""
        return self.bind_port == 0

    def section_items(self) -> list[tuple[str, str]]:
        """Key/value pairs in the order they are written to the INI file."""
        items = [(key, str(getattr(self, key))) for key in PROXY_FIELDS]
        items.extend(self.extra.items())
        return items


class Site(Device):
    """A Device together with the proxy configs it owns."""

    configs: list[ProxyConfig] = Field(default_factory=list, description="Owned proxies")

    @model_validator(mode="after")
    def validate_config_ownership(self) -> "Site":
        for config in self.configs:
            if config.sk != self.mac_address:
                raise ValueError(
                    f"Proxy '{config.name}' has sk '{config.sk}' but belongs to site "
                    f"'{self.mac_address}'"
                )
        return self

    @classmethod
    def from_device(cls, device: Device, configs: list[ProxyConfig] | None = None) -> "Site":
        return cls(**device.model_dump(), configs=configs or [])

    def to_device(self) -> Device:
        return Device(**self.model_dump(exclude={"configs"}))

    @property
    def bind_ports(self) -> list[int]:
        """Assigned bind ports of this site, sentinel excluded."""
        return [config.bind_port for config in self.configs if config.bind_port]


class SiteUpdate(BaseModel):
    """Partial update applied to an existing site; unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    mac_address: str | None = None
    site_code: str | None = None
    site_name: str | None = None
    password: str | None = None
    tags: list[str] | None = None
    configs: list[ProxyConfig] | None = None


class OtherSection(BaseModel):
    """An INI section that is neither [common] nor an stcp proxy, passed through verbatim."""

    name: str = Field(min_length=1)
    config: dict[str, str] = Field(default_factory=dict)


class ParseWarning(BaseModel):
    """A malformed line skipped while parsing."""

    line_number: int = Field(ge=1)
    line: str
    reason: str


class ParsedConfig(BaseModel):
    """Structured form of an frpc INI configuration file."""

    common: dict[str, str] = Field(default_factory=dict)
    devices: list[Device] = Field(default_factory=list)
    stcp_configs: list[ProxyConfig] = Field(default_factory=list)
    other_sections: list[OtherSection] = Field(default_factory=list)
    warnings: list[ParseWarning] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.common or self.devices or self.stcp_configs or self.other_sections)


class ImportResult(BaseModel):
    """Outcome of a batch import; partial success is expected."""

    success_count: int = 0
    overwritten_count: int = 0
    errors: list[str] = Field(default_factory=list)
    duplicates: list[Site] = Field(default_factory=list)
