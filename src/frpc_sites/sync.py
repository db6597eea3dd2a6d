"""Load and save the site registry through the frpc admin API."""

import threading
from datetime import datetime

from .api import FrpcAdminClient
from .common.logging import get_logger
from .exceptions import NoBaselineError, ReloadError
from .models import Site
from .registry import SiteRegistry
from .transcoder import generate, parse

logger = get_logger(__name__)


class ConfigSync:
    """Moves configuration between a SiteRegistry and the frpc admin API.

    One request is in flight at a time. A failed save leaves the registry
    untouched, so calling save() again retries with the same output.
    """

    def __init__(self, registry: SiteRegistry, client: FrpcAdminClient) -> None:
        self.registry = registry
        self.client = client
        self._lock = threading.Lock()
        self._last_sync_time: datetime | None = None

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    @property
    def has_baseline(self) -> bool:
        return self.registry.baseline is not None

    def load(self) -> list[Site]:
        """Fetch the INI text, parse it and replace the registry contents.

        Returns:
            Loaded sites, including registered sites without proxies

        Raises:
            FetchError: If the admin API cannot be read
        """
        with self._lock:
            text = self.client.get_config()
            parsed = parse(text)
            sites = self.registry.load_parsed(parsed)
            self._last_sync_time = datetime.now()

        logger.info(
            "Loaded configuration",
            sites=len(sites),
            other_sections=len(parsed.other_sections),
            warnings=len(parsed.warnings),
        )
        return sites

    def save(self) -> str:
        """Assign pending bind ports, push the generated INI text and reload frpc.

        Returns:
            The INI text that was saved

        Raises:
            NoBaselineError: If load() has not succeeded yet
            SaveError: If the configuration was not saved
            ReloadError: If it was saved but frpc did not reload it
        """
        with self._lock:
            if self.registry.baseline is None:
                raise NoBaselineError()

            self.registry.assign_pending_ports()
            text = generate(self.registry.to_parsed_config())
            self.client.save_config(text)
            self._last_sync_time = datetime.now()

            try:
                self.client.reload_config()
            except ReloadError:
                logger.warning("Configuration saved but frpc reload failed; retry reload or save")
                raise

        logger.info("Saved sites", sites=len(self.registry), size=len(text))
        return text
