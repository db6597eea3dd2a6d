"""In-memory site registry with uniqueness checks and bind port provisioning."""

from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import BaseModel, Field, model_validator

from . import ports, tags as tag_utils
from .common.logging import get_logger
from .config import SyncSettings
from .exceptions import DuplicateKeyError, NotFoundError, RegistryError
from .models import ImportResult, OtherSection, ParsedConfig, ProxyConfig, Site, SiteUpdate
from .transcoder import group_configs_by_site
from .utils import make_proxy_name, rename_proxy_mac, sanitize_log_data, validate_port

logger = get_logger(__name__)

# Proxy fields a caller may change through update_proxy_config
PROXY_UPDATABLE_FIELDS = frozenset({"name", "server_name", "role", "bind_addr", "bind_port", "extra"})


class SiteRegistry(BaseModel):
    """Authoritative list of sites for one management session.

    Invariants held after every mutation:
    MAC addresses are unique, non-empty site codes are unique, non-zero bind
    ports are unique across all proxies, proxy names are unique, and every
    proxy's ``sk`` equals its site's MAC address.

    Conflicts already present in a loaded file are tolerated; a mutation only
    has to keep the keys it changes unique. Lookups return copies, so change
    sites through the registry methods rather than through returned objects.
    """

    settings: SyncSettings = Field(default_factory=SyncSettings)
    sites: list[Site] = Field(default_factory=list, description="Sites in display order")
    baseline: ParsedConfig | None = Field(
        default=None, description="Last loaded config, source of [common] and other sections"
    )

    @model_validator(mode="after")
    def validate_initial_sites(self) -> "SiteRegistry":
        checked: list[Site] = []
        for site in self.sites:
            self._check_unique(site, checked)
            checked.append(site)
        return self

    def __len__(self) -> int:
        return len(self.sites)

    def __contains__(self, mac_address: object) -> bool:
        return any(site.mac_address == mac_address for site in self.sites)

    # Lookup

    def get_site(self, mac_address: str) -> Site | None:
        """Get site by MAC address.

        Returns:
            Site if found, None otherwise
        """
        index = self._find_index(mac_address)
        return None if index is None else self.sites[index].model_copy(deep=True)

    def list_sites(self) -> list[Site]:
        return [site.model_copy(deep=True) for site in self.sites]

    def used_ports(self) -> set[int]:
        """Collect every assigned bind port across all sites."""
        return {port for site in self.sites for port in site.bind_ports}

    def search(self, keyword: str) -> list[Site]:
        """Case-insensitive match on site code, name, MAC address and tags."""
        term = (keyword or "").strip().lower()
        if not term:
            return self.list_sites()
        return [
            site.model_copy(deep=True)
            for site in self.sites
            if term in site.site_code.lower()
            or term in site.site_name.lower()
            or term in site.mac_address.lower()
            or any(term in tag.lower() for tag in site.tags)
        ]

    # Site CRUD

    def add_site(self, site: Site, *, silent: bool = False) -> Site:
        """Add a site.

        Args:
            site: Site to add, with any proxy configs it already owns
            silent: Log at DEBUG instead of INFO

        Returns:
            The stored site

        Raises:
            DuplicateKeyError: If the MAC address, site code, a proxy name or
                a bind port is already in use
        """
        stored = site.model_copy(deep=True)
        self._check_unique(stored, self.sites)
        self.sites.append(stored)
        self._log(silent, "Added site", mac_address=stored.mac_address, site_code=stored.site_code)
        return stored.model_copy(deep=True)

    def update_site(
        self,
        mac_address: str,
        updates: SiteUpdate | dict[str, Any],
        *,
        silent: bool = False,
    ) -> Site:
        """Apply a shallow update to a site.

        Changing the MAC address also moves the site's proxies to the new
        address: their ``sk`` follows, and conventionally named proxies are
        renamed, unless the update supplies its own configs.

        Only the keys the update changes are checked for uniqueness, so sites
        loaded with conflicting codes or ports can still be edited.

        Raises:
            NotFoundError: If no site has mac_address
            DuplicateKeyError: If the update collides with another site
            ValueError: If the update has unknown fields or invalid values
        """
        index = self._require_index(mac_address)
        if not isinstance(updates, SiteUpdate):
            updates = SiteUpdate.model_validate(updates)
        changes = updates.model_dump(exclude_unset=True)

        current = self.sites[index]
        merged = current.model_dump()
        new_mac = changes.get("mac_address") or current.mac_address
        if new_mac != current.mac_address and "configs" not in changes:
            merged["configs"] = [
                _rebind_proxy(config, current.mac_address, new_mac).model_dump()
                for config in current.configs
            ]
        merged.update(changes)

        candidate = Site.model_validate(merged)
        others = self.sites[:index] + self.sites[index + 1:]
        mac_changed = candidate.mac_address != current.mac_address
        self._check_site_keys(
            candidate,
            others,
            mac_address=mac_changed,
            site_code=candidate.site_code != current.site_code,
        )
        if "configs" in changes:
            self._check_proxy_keys(candidate.configs, _proxies(others))
        elif mac_changed:
            renamed: list[ProxyConfig] = []
            unchanged: list[ProxyConfig] = []
            for old, new in zip(current.configs, candidate.configs):
                (renamed if new.name != old.name else unchanged).append(new)
            self._check_proxy_keys(renamed, [*_proxies(others), *unchanged], ports=False)

        self.sites[index] = candidate
        logged = sanitize_log_data({k: v for k, v in changes.items() if k != "configs"})
        self._log(silent, "Updated site", mac_address=mac_address, changes=logged)
        return candidate.model_copy(deep=True)

    def delete_site(self, mac_address: str, *, silent: bool = False) -> Site:
        """Remove a site and all its proxy configs.

        Raises:
            NotFoundError: If no site has mac_address
        """
        index = self._require_index(mac_address)
        site = self.sites.pop(index)
        self._log(silent, "Deleted site", mac_address=mac_address, proxies=len(site.configs))
        return site

    def clear(self) -> None:
        self.sites.clear()
        logger.info("Cleared all sites from registry")

    # Batch import

    def import_sites(self, sites: Iterable[Site]) -> ImportResult:
        """Add each site independently, collecting failures instead of aborting."""
        result = ImportResult()
        for site in sites:
            try:
                self.add_site(site, silent=True)
                result.success_count += 1
            except RegistryError as e:
                result.errors.append(f"{_label(site)}: {e}")

        logger.info("Imported sites", succeeded=result.success_count, failed=len(result.errors))
        return result

    def import_with_duplicate_check(self, sites: Iterable[Site]) -> ImportResult:
        """Import sites whose MAC address is new; report the others as duplicates."""
        fresh: list[Site] = []
        duplicates: list[Site] = []
        for site in sites:
            (duplicates if site.mac_address in self else fresh).append(site)

        result = self.import_sites(fresh)
        result.duplicates = duplicates
        if duplicates:
            logger.info("Import held back duplicate sites", duplicates=len(duplicates))
        return result

    def import_with_overwrite(self, sites: Iterable[Site], overwrite: bool) -> ImportResult:
        """Import sites, replacing existing ones with the same MAC when overwrite is set.

        Existing sites are skipped (neither success nor error) when overwrite
        is False. Replaced sites keep their position in the registry.
        """
        result = ImportResult()
        for site in sites:
            index = self._find_index(site.mac_address)
            try:
                if index is None:
                    self.add_site(site, silent=True)
                    result.success_count += 1
                elif overwrite:
                    replacement = site.model_copy(deep=True)
                    others = self.sites[:index] + self.sites[index + 1:]
                    self._check_unique(replacement, others)
                    self.sites[index] = replacement
                    result.overwritten_count += 1
            except RegistryError as e:
                result.errors.append(f"{_label(site)}: {e}")

        logger.info(
            "Imported sites",
            succeeded=result.success_count,
            overwritten=result.overwritten_count,
            failed=len(result.errors),
        )
        return result

    # Ports and proxy configs

    def allocate_bind_port(self, claimed: Iterable[int] = ()) -> int:
        """Allocate the lowest bind port not used by any proxy or in claimed.

        Args:
            claimed: Ports already handed out earlier in the same batch

        Raises:
            ExhaustedRangeError: If the configured range is full
        """
        used = self.used_ports()
        used.update(claimed)
        return ports.allocate(used, self.settings.start_port, self.settings.max_port)

    def generate_default_configs(
        self,
        site: Site | str,
        prefix: str | None = None,
        service_ports: Sequence[int] | None = None,
    ) -> list[ProxyConfig]:
        """Build one proxy per default service port with distinct bind ports.

        The configs are returned, not stored; attach them to the site before
        adding it, or pass them to update_site.
        """
        if isinstance(site, Site):
            mac_address = site.mac_address
            claimed = set(site.bind_ports)
        else:
            mac_address = site
            claimed = set()
        prefix = prefix or self.settings.proxy_prefix

        configs = []
        for service_port in service_ports or self.settings.service_ports:
            bind_port = self.allocate_bind_port(claimed)
            claimed.add(bind_port)
            name = make_proxy_name(prefix, mac_address, service_port)
            configs.append(
                ProxyConfig(
                    name=name,
                    server_name=name,
                    sk=mac_address,
                    bind_addr=self.settings.bind_addr,
                    bind_port=bind_port,
                )
            )
        return configs

    def add_proxy_config(
        self,
        mac_address: str,
        service_port: int,
        *,
        prefix: str | None = None,
        bind_port: int | None = None,
        bind_addr: str | None = None,
        silent: bool = False,
    ) -> ProxyConfig:
        """Add a proxy for one service port to an existing site.

        Args:
            mac_address: Owning site
            service_port: Remote service port, embedded in the proxy name
            prefix: Proxy name prefix, defaults to settings.proxy_prefix
            bind_port: Local port; allocated when None, 0 leaves it pending
            bind_addr: Local interface, defaults to settings.bind_addr

        Raises:
            NotFoundError: If the site does not exist
            DuplicateKeyError: If the proxy name or bind port is taken
        """
        index = self._require_index(mac_address)
        validate_port(service_port, "Service port")
        if bind_port is None:
            bind_port = self.allocate_bind_port()

        name = make_proxy_name(prefix or self.settings.proxy_prefix, mac_address, service_port)
        proxy = ProxyConfig(
            name=name,
            server_name=name,
            sk=mac_address,
            bind_addr=bind_addr or self.settings.bind_addr,
            bind_port=bind_port,
        )

        self._check_proxy_keys([proxy], _proxies(self.sites))
        self.sites[index].configs.append(proxy)
        self._log(silent, "Added proxy config", name=name, bind_port=bind_port)
        return proxy.model_copy(deep=True)

    def update_proxy_config(
        self, name: str, updates: dict[str, Any], *, silent: bool = False
    ) -> ProxyConfig:
        """Update fields of the proxy called name.

        Only a changed name or bind port is checked against the other proxies.

        Raises:
            NotFoundError: If no proxy has that name
            DuplicateKeyError: If a new name or bind port is taken
            ValueError: If updates touch type, sk or an unknown field
        """
        site_index, config_index = self._require_proxy(name)
        unknown = set(updates) - PROXY_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update proxy fields: {', '.join(sorted(unknown))}")

        configs = self.sites[site_index].configs
        current = configs[config_index]
        updated = ProxyConfig.model_validate({**current.model_dump(), **updates})

        self._check_proxy_keys(
            [updated],
            [config for config in _proxies(self.sites) if config is not current],
            names=updated.name != current.name,
            ports=updated.bind_port != current.bind_port,
        )
        configs[config_index] = updated
        self._log(silent, "Updated proxy config", name=name, fields=sorted(updates))
        return updated.model_copy(deep=True)

    def delete_proxy_config(self, name: str, *, silent: bool = False) -> ProxyConfig:
        """Remove the proxy called name from its site.

        Raises:
            NotFoundError: If no proxy has that name
        """
        site_index, config_index = self._require_proxy(name)
        proxy = self.sites[site_index].configs.pop(config_index)
        self._log(silent, "Deleted proxy config", name=name)
        return proxy

    def assign_pending_ports(self) -> int:
        """Give every proxy with bind_port 0 a free port.

        Ports are assigned in site and proxy order, each one claimed before
        the next is chosen.

        Returns:
            Number of proxies that received a port
        """
        claimed: set[int] = set()
        for site in self.sites:
            for config in site.configs:
                if config.is_pending:
                    config.bind_port = self.allocate_bind_port(claimed)
                    claimed.add(config.bind_port)
                    logger.debug("Assigned pending bind port", name=config.name, port=config.bind_port)

        if claimed:
            logger.info("Assigned pending bind ports", count=len(claimed))
        return len(claimed)

    # Tags

    def add_tag(self, mac_address: str, tag: str, *, silent: bool = False) -> bool:
        """Append tag to a site.

        Returns:
            False if the site already had the tag (no-op), True otherwise

        Raises:
            NotFoundError: If the site does not exist
            ValueError: If the tag is empty, too long or reserved
        """
        site = self._require_site(mac_address)
        tag = tag_utils.validate_tag(tag)
        if tag in site.tags:
            return False
        site.tags.append(tag)
        self._log(silent, "Added tag", mac_address=mac_address, tag=tag)
        return True

    def remove_tag(self, mac_address: str, tag: str, *, silent: bool = False) -> bool:
        """Remove tag from a site; returns False if it was not there."""
        site = self._require_site(mac_address)
        tag = tag_utils.normalize_tag(tag)
        if tag not in site.tags:
            return False
        site.tags = [existing for existing in site.tags if existing != tag]
        self._log(silent, "Removed tag", mac_address=mac_address, tag=tag)
        return True

    def toggle_tag(self, mac_address: str, tag: str, *, silent: bool = False) -> bool:
        """Add tag if missing, remove it if present; returns whether it is now set."""
        site = self._require_site(mac_address)
        if tag_utils.normalize_tag(tag) in site.tags:
            self.remove_tag(mac_address, tag, silent=silent)
            return False
        return self.add_tag(mac_address, tag, silent=silent)

    def all_tags(self) -> list[str]:
        return tag_utils.all_tags(self.sites)

    def tag_counts(self) -> dict[str, int]:
        return tag_utils.tag_counts(self.sites)

    def filter_by_tags(self, selected: Iterable[str], match_all: bool = False) -> list[Site]:
        return [
            site.model_copy(deep=True)
            for site in tag_utils.filter_sites_by_tags(self.sites, selected, match_all)
        ]

    # Config document

    def load_parsed(self, parsed: ParsedConfig) -> list[Site]:
        """Replace the registry contents with a parsed config.

        Conflicts already present in the file (duplicate site codes or bind
        ports) are logged and tolerated; they are rejected only for mutations.
        Proxies that cannot be grouped into a site (empty or unusable ``sk``)
        are kept with the baseline's other sections and written back as read.
        """
        self.baseline = parsed.model_copy(deep=True)
        self.sites = group_configs_by_site(parsed.stcp_configs, parsed.devices)

        grouped = {site.mac_address for site in self.sites}
        for proxy in parsed.stcp_configs:
            if proxy.sk not in grouped:
                self.baseline.other_sections.append(
                    OtherSection(name=proxy.name, config=dict(proxy.section_items()))
                )
                logger.warning("Keeping ungrouped proxy config as plain section", name=proxy.name)

        seen_codes: set[str] = set()
        seen_ports: set[int] = set()
        for site in self.sites:
            if site.site_code and site.site_code in seen_codes:
                logger.warning("Loaded duplicate site code", site_code=site.site_code)
            seen_codes.add(site.site_code)
            for port in site.bind_ports:
                if port in seen_ports:
                    logger.warning("Loaded duplicate bind port", port=port, mac_address=site.mac_address)
                seen_ports.add(port)

        logger.info("Loaded sites into registry", sites=len(self.sites))
        return self.list_sites()

    def to_parsed_config(self) -> ParsedConfig:
        """Build a ParsedConfig from the current sites and the retained baseline."""
        baseline = self.baseline or ParsedConfig()
        return ParsedConfig(
            common=dict(baseline.common),
            devices=[site.to_device() for site in self.sites],
            stcp_configs=[
                config.model_copy(deep=True) for site in self.sites for config in site.configs
            ],
            other_sections=[section.model_copy(deep=True) for section in baseline.other_sections],
        )

    # Internal helpers

    def _find_index(self, mac_address: str) -> int | None:
        for index, site in enumerate(self.sites):
            if site.mac_address == mac_address:
                return index
        return None

    def _require_index(self, mac_address: str) -> int:
        index = self._find_index(mac_address)
        if index is None:
            raise NotFoundError(mac_address, f"Site with MAC address '{mac_address}' not found")
        return index

    def _require_site(self, mac_address: str) -> Site:
        return self.sites[self._require_index(mac_address)]

    def _require_proxy(self, name: str) -> tuple[int, int]:
        for site_index, site in enumerate(self.sites):
            for config_index, config in enumerate(site.configs):
                if config.name == name:
                    return site_index, config_index
        raise NotFoundError(name, f"Proxy config '{name}' not found")

    @classmethod
    def _check_unique(cls, site: Site, others: Sequence[Site]) -> None:
        """Raise DuplicateKeyError if any key of site collides with itself or with others."""
        cls._check_site_keys(site, others)
        cls._check_proxy_keys(site.configs, _proxies(others))

    @staticmethod
    def _check_site_keys(
        site: Site,
        others: Sequence[Site],
        *,
        mac_address: bool = True,
        site_code: bool = True,
    ) -> None:
        for other in others:
            if mac_address and other.mac_address == site.mac_address:
                raise DuplicateKeyError(
                    "mac_address",
                    site.mac_address,
                    f"MAC address {site.mac_address} already exists",
                )
            if site_code and site.site_code and other.site_code == site.site_code:
                raise DuplicateKeyError(
                    "site_code", site.site_code, f"Site code {site.site_code} already exists"
                )

    @staticmethod
    def _check_proxy_keys(
        configs: Sequence[ProxyConfig],
        existing: Iterable[ProxyConfig],
        *,
        names: bool = True,
        ports: bool = True,
    ) -> None:
        """Check names and non-zero bind ports of configs among themselves and against existing."""
        seen_names: set[str] = set()
        seen_ports: set[int] = set()
        for config in configs:
            if names:
                if config.name in seen_names:
                    raise DuplicateKeyError(
                        "name", config.name, f"Proxy name '{config.name}' is used twice"
                    )
                seen_names.add(config.name)
            if ports and config.bind_port:
                if config.bind_port in seen_ports:
                    raise DuplicateKeyError(
                        "bind_port", config.bind_port, f"Bind port {config.bind_port} is used twice"
                    )
                seen_ports.add(config.bind_port)

        for config in existing:
            if config.name in seen_names:
                raise DuplicateKeyError(
                    "name", config.name, f"Proxy name '{config.name}' already exists"
                )
            if config.bind_port and config.bind_port in seen_ports:
                raise DuplicateKeyError(
                    "bind_port",
                    config.bind_port,
                    f"Bind port {config.bind_port} is already used by {config.sk}",
                )

    @staticmethod
    def _log(silent: bool, event: str, **kwargs: Any) -> None:
        if silent:
            logger.debug(event, **kwargs)
        else:
            logger.info(event, **kwargs)


def _rebind_proxy(config: ProxyConfig, old_mac: str, new_mac: str) -> ProxyConfig:
    name = rename_proxy_mac(config.name, old_mac, new_mac)
    server_name = name if config.server_name == config.name else config.server_name
    return config.model_copy(update={"sk": new_mac, "name": name, "server_name": server_name})


def _label(site: Site) -> str:
    return site.site_code or site.mac_address


def _proxies(sites: Iterable[Site]) -> list[ProxyConfig]:
    return [config for site in sites for config in site.configs]

