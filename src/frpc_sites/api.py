"""HTTP client for the frpc admin API (``/api/config`` and ``/api/reload``)."""

from types import TracebackType
from typing import Literal

import requests

from .common.logging import get_logger
from .config import SyncSettings
from .exceptions import FetchError, ReloadError, SaveError, SyncError

logger = get_logger(__name__)

CONFIG_PATH = "/api/config"
RELOAD_PATH = "/api/reload"


class FrpcAdminClient:
    """Fetches, stores and reloads the frpc INI configuration over HTTP."""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the admin API, e.g. ``http://127.0.0.1:7400``
            timeout: Per-request timeout in seconds
            session: Session to send requests with; a new one is created if None
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    @classmethod
    def from_settings(
        cls, settings: SyncSettings, session: requests.Session | None = None
    ) -> "FrpcAdminClient":
        return cls(settings.base_url, settings.timeout, session)

    def get_config(self) -> str:
        """Fetch the current INI text.

        Raises:
            FetchError: On transport failure or a non-2xx response
        """
        response = self._request(
            "GET", CONFIG_PATH, FetchError, "fetch configuration", headers={"Accept": "text/plain"}
        )
        if "charset" not in response.headers.get("Content-Type", "").lower():
            # requests assumes ISO-8859-1 for bare text/plain; frpc writes UTF-8
            response.encoding = "utf-8"
        text = response.text
        logger.debug("Fetched configuration", size=len(text))
        return text

    def save_config(self, content: str) -> None:
        """Replace the persisted INI text.

        Raises:
            SaveError: On transport failure or a non-2xx response
        """
        self._request(
            "PUT",
            CONFIG_PATH,
            SaveError,
            "save configuration",
            data=content.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        logger.info("Saved configuration", size=len(content))

    def reload_config(self) -> None:
        """Ask frpc to reload the persisted configuration.

        Raises:
            ReloadError: On transport failure or a non-2xx response
        """
        self._request("GET", RELOAD_PATH, ReloadError, "reload configuration")
        logger.info("Reloaded frpc configuration")

    def test_connection(self) -> bool:
        """Return True if the admin API answers a HEAD request with 2xx."""
        try:
            response = self._session.head(self._url(CONFIG_PATH), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.debug("Admin API not reachable", error=str(e))
            return False
        return bool(response.ok)

    def close(self) -> None:
        self._session.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        error_class: type[SyncError],
        action: str,
        **kwargs: object,
    ) -> requests.Response:
        url = self._url(path)
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error(f"Failed to {action}", url=url, error="timeout")
            raise error_class(f"Failed to {action}: request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to {action}", url=url, error=str(e))
            raise error_class(f"Failed to {action}: {e}") from e

        if not response.ok:
            logger.error(f"Failed to {action}", url=url, status_code=response.status_code)
            raise error_class(
                f"Failed to {action}: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        return response

    def __enter__(self) -> "FrpcAdminClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        self.close()
        return False
