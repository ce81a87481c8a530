"""
Matchsight Local API Transport

Talks to the game client's local API and, through the entitlement tokens it
hands out, to the remote player-data, match and content services.

The local API is described by the Riot Client lockfile
(``name:pid:port:password:protocol``). Requests to it go to
``https://127.0.0.1:{port}`` with basic auth ``riot:{password}`` and a
self-signed certificate. Remote requests carry the bearer token and
entitlement JWT from ``/entitlements/v1/token``.
"""

import base64
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests
import urllib3
from requests.adapters import HTTPAdapter

from matchsight.core.constants import (
    CLIENT_PLATFORM,
    CLIENT_USER_AGENT,
    LOCAL_HOST,
    Domain,
)
from matchsight.core.errors import TransportDisconnected, TransportError

logger = logging.getLogger(__name__)

# Loopback certificate is self-signed
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

PRESENCES_ENDPOINT = "/chat/v4/presences"
ENTITLEMENTS_ENDPOINT = "/entitlements/v1/token"

BAD_CLAIMS = "BAD_CLAIMS"
RPC_ERROR = "RPC_ERROR"
MAX_CLAIM_REFRESHES = 3


def _local_app_data() -> Path:
    return Path(os.environ.get("LOCALAPPDATA", str(Path.home() / "AppData" / "Local")))


def get_default_lockfile_path() -> Path:
    """Location of the Riot Client lockfile."""
    return _local_app_data() / "Riot Games" / "Riot Client" / "Config" / "lockfile"


def get_default_log_path() -> Path:
    """Location of the game client log, used for region discovery."""
    return _local_app_data() / "VALORANT" / "Saved" / "Logs" / "ShooterGame.log"


# ============================================================================
# Lockfile and region discovery
# ============================================================================


@dataclass(frozen=True)
class Lockfile:
    """Parsed Riot Client lockfile."""

    name: str
    pid: str
    port: str
    password: str
    protocol: str = "https"

    @property
    def base_url(self) -> str:
        return f"https://{LOCAL_HOST}:{self.port}"

    @property
    def auth_header(self) -> dict[str, str]:
        token = base64.b64encode(f"riot:{self.password}".encode("ascii")).decode()
        return {"Authorization": f"Basic {token}"}


def parse_lockfile(text: str) -> Lockfile | None:
    """Parse ``name:pid:port:password:protocol``; None if malformed."""
    parts = text.strip().split(":")
    if len(parts) < 5 or not parts[2].isdigit():
        return None
    return Lockfile(name=parts[0], pid=parts[1], port=parts[2], password=parts[3], protocol=parts[4])


def read_lockfile(path: Path) -> Lockfile | None:
    """Read the lockfile at ``path``; None when absent or unreadable."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.debug(f"Could not read lockfile {path}: {e}")
        return None
    return parse_lockfile(text)


@dataclass(frozen=True)
class Region:
    """Player-data region and the match-service shard."""

    region: str
    shard_region: str
    shard: str

    @property
    def pd_url(self) -> str:
        return f"https://pd.{self.region}.a.pvp.net"

    @property
    def glz_url(self) -> str:
        return f"https://glz-{self.shard_region}.{self.shard}.a.pvp.net"

    @property
    def shared_url(self) -> str:
        return f"https://shared.{self.region}.a.pvp.net"


_PD_PATTERN = re.compile(r"pd\.([^.]+)\.a\.pvp\.net")
_GLZ_PATTERN = re.compile(r"https://glz-([^.]+)\.([^.]+)\.")
_VERSION_MARKER = "CI server version: "


def parse_region(lines: list[str]) -> Region | None:
    """Find the pd region and glz shard in client log lines."""
    region = ""
    shard_region = ""
    shard = ""

    for line in lines:
        if ".a.pvp.net/account-xp/v1/" in line:
            match = _PD_PATTERN.search(line)
            if match:
                region = match.group(1)
        elif "https://glz-" in line:
            match = _GLZ_PATTERN.search(line)
            if match:
                shard_region, shard = match.group(1), match.group(2)
        if region and shard_region and shard:
            break

    if region == "pbe":
        return Region("na", "na-1", "na")
    if not (region and shard_region and shard):
        return None
    return Region(region, shard_region, shard)


def parse_client_version(lines: list[str]) -> str:
    """Build the ``X-Riot-ClientVersion`` value from the client log."""
    for line in lines:
        if _VERSION_MARKER in line:
            raw = line.split(_VERSION_MARKER, 1)[1].strip()
            if raw:
                parts = raw.split("-")
                parts.insert(2, "shipping")
                return "-".join(parts)
    return ""


@dataclass(frozen=True)
class Descriptor:
    """Whether the local API descriptor (lockfile) exists right now."""

    present: bool
    lockfile: Lockfile | None = None


# ============================================================================
# Transport
# ============================================================================


class LocalClient:
    """
    Authenticated access to the local API and the services behind it.

    Example:
        >>> client = LocalClient()
        >>> if client.descriptor().present:
        ...     presences = client.presence()
        ...     match = client.fetch("glz", f"/core-game/v1/players/{client.subject}")
    """

    def __init__(
        self,
        lockfile_path: Path | None = None,
        log_path: Path | None = None,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        """
        Initialize the transport.

        Args:
            lockfile_path: Riot Client lockfile (defaults to the LOCALAPPDATA location)
            log_path: Game client log used to discover region and version
            timeout: Default per-request timeout in seconds
            session: Optional requests session (tests inject one)
        """
        self.lockfile_path = Path(lockfile_path) if lockfile_path else get_default_lockfile_path()
        self.log_path = Path(log_path) if log_path else get_default_log_path()
        self.timeout = timeout

        self._session = session
        self._lock = threading.Lock()
        self._lockfile: Lockfile | None = None
        self._headers: dict[str, str] = {}
        self._subject = ""
        self._region: Region | None = None
        self._client_version = ""

    # ------------------------------------------------------------------
    # Session and descriptor
    # ------------------------------------------------------------------

    def _get_session(self) -> requests.Session:
        """Get or create requests session."""
        if self._session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=4, pool_maxsize=32)
            session.mount("https://", adapter)
            self._session = session
        return self._session

    def descriptor(self) -> Descriptor:
        """Re-read the lockfile; a changed port or account drops cached auth."""
        lockfile = read_lockfile(self.lockfile_path)
        with self._lock:
            if lockfile != self._lockfile:
                if self._lockfile is not None and lockfile is not None:
                    logger.info(f"Lockfile changed (port {self._lockfile.port} -> {lockfile.port})")
                self._lockfile = lockfile
                self._headers = {}
        return Descriptor(present=lockfile is not None, lockfile=lockfile)

    @property
    def subject(self) -> str:
        """The logged-in player's id, known once entitlements were fetched."""
        if not self._subject:
            try:
                self._ensure_headers()
            except TransportError as e:
                logger.debug(f"Subject not available yet: {e}")
        return self._subject

    @property
    def region(self) -> Region | None:
        if self._region is None:
            self._load_client_log()
        return self._region

    def _load_client_log(self) -> None:
        try:
            lines = self.log_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.warning(f"Could not read client log {self.log_path}: {e}")
            return
        self._region = parse_region(lines)
        self._client_version = parse_client_version(lines)
        if self._region is None:
            logger.warning("Region not found in client log")

    def _current_lockfile(self) -> Lockfile:
        if self._lockfile is None:
            self.descriptor()
        if self._lockfile is None:
            raise TransportDisconnected()
        return self._lockfile

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _ensure_headers(self, refresh: bool = False) -> dict[str, str]:
        """Fetch entitlement headers for the remote services."""
        if self._headers and not refresh:
            return self._headers

        lockfile = self._current_lockfile()
        try:
            response = self._get_session().get(
                f"{lockfile.base_url}{ENTITLEMENTS_ENDPOINT}",
                headers=lockfile.auth_header,
                verify=False,
                timeout=self.timeout,
            )
            entitlements = response.json()
        except (requests.RequestException, ValueError) as e:
            raise TransportError(f"Entitlement request failed: {e}") from e

        if not isinstance(entitlements, dict) or "accessToken" not in entitlements:
            message = entitlements.get("message") if isinstance(entitlements, dict) else entitlements
            raise TransportError(f"Entitlements not ready: {message}")

        if self.region is None:
            logger.debug("Region unknown; remote requests will fail until the client log has it")

        with self._lock:
            self._subject = entitlements.get("subject", "")
            self._headers = {
                "Authorization": f"Bearer {entitlements['accessToken']}",
                "X-Riot-Entitlements-JWT": entitlements.get("token", ""),
                "X-Riot-ClientPlatform": CLIENT_PLATFORM,
                "X-Riot-ClientVersion": self._client_version,
                "User-Agent": CLIENT_USER_AGENT,
            }
        return self._headers

    def refresh_headers(self) -> None:
        """Drop cached entitlements; the next remote call re-authenticates."""
        with self._lock:
            self._headers = {}

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def base_url(self, domain: str) -> str:
        """Base URL for an endpoint family."""
        domain = Domain(domain)
        if domain is Domain.LOCAL:
            return self._current_lockfile().base_url
        if domain is Domain.CUSTOM:
            return ""
        region = self.region
        if region is None:
            raise TransportError("Region unknown; client log not available")
        if domain is Domain.GLZ:
            return region.glz_url
        if domain is Domain.PD:
            return region.pd_url
        return region.shared_url

    def fetch(
        self,
        domain: str,
        path: str,
        method: str = "GET",
        json: Any = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Request an endpoint and return its decoded JSON body.

        Args:
            domain: One of local, glz, pd, shared, custom
            path: Endpoint path (an absolute URL for custom)
            method: HTTP method
            json: Optional JSON body
            timeout: Seconds before the request counts as failed

        Returns:
            Decoded JSON. 404 bodies are returned as-is so callers can read
            their ``errorCode``.

        Raises:
            TransportDisconnected: No lockfile, so no credentials
            TransportError: Connection failure, timeout, or an error status
        """
        timeout = timeout or self.timeout
        url = f"{self.base_url(domain)}{path}"

        if Domain(domain) is Domain.LOCAL:
            return self._send(method, url, self._current_lockfile().auth_header, json, timeout)

        for attempt in range(MAX_CLAIM_REFRESHES + 1):
            headers = self._ensure_headers(refresh=attempt > 0)
            try:
                return self._send(method, url, headers, json, timeout)
            except TransportError as e:
                if e.error_code != BAD_CLAIMS or attempt == MAX_CLAIM_REFRESHES:
                    raise
                logger.info(f"Bad claims on {path}, refreshing token ({attempt + 1}/{MAX_CLAIM_REFRESHES})")
        raise TransportError(f"Token refresh failed for {path}", error_code=BAD_CLAIMS)

    def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
        timeout: float,
    ) -> Any:
        try:
            response = self._get_session().request(
                method.upper(),
                url,
                headers=headers,
                json=body,
                verify=False,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise TransportError(f"{method} {url} timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        error_code = data.get("errorCode") if isinstance(data, dict) else None
        if response.status_code == 404:
            return data if data is not None else {"errorCode": "RESOURCE_NOT_FOUND"}
        if response.status_code >= 400 or error_code in (BAD_CLAIMS, RPC_ERROR):
            raise TransportError(
                f"{method} {url} returned {response.status_code} ({error_code})",
                status_code=response.status_code,
                error_code=error_code,
            )
        logger.debug(f"{method} {url} -> {response.status_code}")
        return data

    def presence(self, timeout: float | None = None) -> list[dict[str, Any]] | None:
        """
        Fetch the presence list from the local API.

        Returns:
            List of presence entries, or None when the API is unreachable
        """
        try:
            data = self.fetch(Domain.LOCAL, PRESENCES_ENDPOINT, timeout=timeout)
        except TransportError as e:
            logger.debug(f"Presence poll failed: {e}")
            return None
        if not isinstance(data, dict):
            return None
        presences = data.get("presences")
        return presences if isinstance(presences, list) else None
