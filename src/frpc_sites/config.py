"""Settings for the site registry and the frpc admin API client."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_START_PORT = 18000
DEFAULT_SERVICE_PORTS = [22, 3306, 5000]  # SSH, MySQL, Web


class SyncSettings(BaseModel):
    """Configuration shared by SiteRegistry, FrpcAdminClient and ConfigSync."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )

    base_url: str = Field(default="", description="Root URL of the frpc admin API")
    timeout: float = Field(
        default=10.0, ge=0.1, le=120.0, description="Per-request timeout in seconds"
    )
    start_port: int = Field(
        default=DEFAULT_START_PORT, ge=1, le=65535, description="First bind port to allocate"
    )
    max_port: int = Field(default=65535, ge=1, le=65535, description="Last bind port to allocate")
    proxy_prefix: str = Field(
        default="R", min_length=1, max_length=16, description="Proxy name prefix"
    )
    service_ports: list[int] = Field(
        default_factory=lambda: list(DEFAULT_SERVICE_PORTS),
        description="Service ports provisioned for a new site",
    )
    bind_addr: str = Field(
        default="0.0.0.0", min_length=1, description="Local bind address for new proxies"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Store the base URL without a trailing slash."""
        return v.rstrip("/")

    @field_validator("proxy_prefix")
    @classmethod
    def validate_proxy_prefix(cls, v: str) -> str:
        """Prefix must not break the ``<prefix>-<mac>-<port>`` convention."""
        if any(char in v for char in "-[]= "):
            raise ValueError("Proxy prefix cannot contain '-', '[', ']', '=' or spaces")
        return v

    @field_validator("service_ports")
    @classmethod
    def validate_service_ports(cls, v: list[int]) -> list[int]:
        """Service ports must be valid and unique."""
        for port in v:
            if not 1 <= port <= 65535:
                raise ValueError(f"Service port {port} must be between 1 and 65535")
        if len(set(v)) != len(v):
            raise ValueError("Service ports must be unique")
        return v

    @model_validator(mode="after")
    def validate_port_range(self) -> "SyncSettings":
        if self.start_port > self.max_port:
            raise ValueError("start_port cannot be greater than max_port")
        return self
