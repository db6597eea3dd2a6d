"""frpc site management - keep an frpc visitor config in sync with a site registry."""

from . import access, ports, tags
from .api import FrpcAdminClient
from .common.logging import get_logger, setup_logging
from .config import SyncSettings
from .exceptions import (
    DuplicateKeyError,
    ExhaustedRangeError,
    FetchError,
    FrpcSitesError,
    NoBaselineError,
    NotFoundError,
    RegistryError,
    ReloadError,
    SaveError,
    SyncError,
)
from .models import (
    Device,
    ImportResult,
    OtherSection,
    ParsedConfig,
    ParseWarning,
    ProxyConfig,
    Site,
    SiteUpdate,
)
from .registry import SiteRegistry
from .sync import ConfigSync
from .transcoder import generate, group_configs_by_site, parse
from .utils import mask_sensitive_data, normalize_mac, sanitize_log_data

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # Transcoder
    "parse",
    "generate",
    "group_configs_by_site",
    # Registry and sync
    "SiteRegistry",
    "ConfigSync",
    "FrpcAdminClient",
    "SyncSettings",
    # Models
    "Device",
    "ProxyConfig",
    "Site",
    "SiteUpdate",
    "ParsedConfig",
    "OtherSection",
    "ParseWarning",
    "ImportResult",
    # Exceptions
    "FrpcSitesError",
    "RegistryError",
    "DuplicateKeyError",
    "NotFoundError",
    "ExhaustedRangeError",
    "SyncError",
    "FetchError",
    "SaveError",
    "ReloadError",
    "NoBaselineError",
    # Utilities
    "get_logger",
    "setup_logging",
    "normalize_mac",
    "mask_sensitive_data",
    "sanitize_log_data",
    "access",
    "ports",
    "tags",
]
