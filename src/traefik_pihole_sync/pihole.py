"""Pi-hole v6 API client.

Every pass logs in once through ``POST /api/auth`` and reuses the returned
session id (sent as the ``sid`` header) for all reads and writes of that pass.
Local DNS records live in the ``dns.hosts`` config array as
``"<address> <hostname>"`` lines.

Two parts of the API differ between Pi-hole releases and are fixed per
deployment rather than probed at runtime:

    auth encoding   "form": password as form fields
                    "json": JSON body with the app_sudo flag
    write mode      "replace": PUT the whole hosts array to /api/config/dns
                    "item": PUT /api/config/dns/hosts/<escaped line>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import requests

from .errors import AuthenticationError, DownstreamAPIError, TransportError

logger = logging.getLogger(__name__)

WRITE_SUCCESS_CODES = (200, 201, 204)


class AuthEncoding(Enum):
    FORM = "form"
    JSON = "json"


class WriteMode(Enum):
    REPLACE = "replace"
    ITEM = "item"


# =============================================================================
# Host Entries
# =============================================================================


@dataclass(frozen=True)
class HostEntry:
    """A local DNS record, an address/hostname pair."""

    address: str
    hostname: str

    @property
    def line(self) -> str:
        return f"{self.address} {self.hostname}"


def parse_hosts(lines: Iterable[Any]) -> Dict[str, str]:
    """Map hostname -> address from Pi-hole host lines.

    Lines with fewer than two whitespace-separated tokens are skipped. When a
    hostname appears more than once, the later line wins.
    """
    records: Dict[str, str] = {}
    for line in lines:
        if not isinstance(line, str):
            logger.debug(f"Skipping non-string host entry: {line!r}")
            continue
        parts = line.split()
        if len(parts) < 2:
            if line.strip():
                logger.debug(f"Skipping malformed host entry: {line!r}")
            continue
        records[parts[1]] = parts[0]
    return records


# =============================================================================
# Client and Session
# =============================================================================


class PiholeClient:
    """Entry point to a Pi-hole instance; hands out authenticated sessions."""

    def __init__(
        self,
        url: str,
        password: str,
        *,
        auth_encoding: AuthEncoding = AuthEncoding.FORM,
        write_mode: WriteMode = WriteMode.REPLACE,
        timeout_seconds: float = 10.0,
    ):
        self._url = url.rstrip("/")
        self._password = password
        self._auth_encoding = auth_encoding
        self._write_mode = write_mode
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "Pi-hole"

    def _auth_request_kwargs(self) -> Dict[str, Any]:
        if self._auth_encoding is AuthEncoding.JSON:
            return {"json": {"password": self._password, "app_sudo": True}}
        return {"data": {"password": self._password}}

    def authenticate(self) -> "PiholeSession":
        """Log in and return a session bound to the new session id.

        Raises:
            TransportError: Pi-hole could not be reached.
            AuthenticationError: the login was refused or returned no session id.
        """
        http = requests.Session()
        try:
            sid, validity = self._login(http)
        except Exception:
            http.close()
            raise

        logger.debug(f"Authenticated with {self.name} (session valid for {validity}s)")
        return PiholeSession(
            self._url,
            sid,
            http=http,
            write_mode=self._write_mode,
            timeout_seconds=self._timeout,
            validity=validity if isinstance(validity, int) else None,
        )

    def _login(self, http: requests.Session) -> Tuple[str, Any]:
        auth_url = f"{self._url}/api/auth"
        try:
            response = http.post(auth_url, timeout=self._timeout, **self._auth_request_kwargs())
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to reach {self.name} at {auth_url}: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication failed with status {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError(
                f"Failed to parse auth response: {e}", status=200, body=response.text
            ) from e

        session = data.get("session") if isinstance(data, dict) else None
        sid = session.get("sid") if isinstance(session, dict) else None
        if not isinstance(sid, str) or not sid:
            raise AuthenticationError(
                f"No session ID received from {self.name}", status=200, body=response.text
            )

        return sid, session.get("validity")


class PiholeSession:
    """An authenticated Pi-hole session, valid for a single sync pass."""

    def __init__(
        self,
        url: str,
        sid: str,
        *,
        http: Optional[requests.Session] = None,
        write_mode: WriteMode = WriteMode.REPLACE,
        timeout_seconds: float = 10.0,
        validity: Optional[int] = None,
    ):
        self._url = url.rstrip("/")
        self.sid = sid
        self.validity = validity
        self._write_mode = write_mode
        self._timeout = timeout_seconds
        self._http = http or requests.Session()
        self._http.headers.update({"sid": sid, "Accept": "application/json"})

    def close(self) -> None:
        """Release the pooled connections of this session."""
        self._http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self._url}{path}"
        try:
            return self._http.request(method, url, timeout=self._timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    def get_hosts(self) -> List[str]:
        """Return the raw ``dns.hosts`` lines."""
        response = self._request("GET", "/api/config/dns")
        if response.status_code != 200:
            raise DownstreamAPIError(
                f"Pi-hole API returned {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
            hosts = data["config"]["dns"]["hosts"]
        except (ValueError, KeyError, TypeError) as e:
            raise DownstreamAPIError(
                f"Unexpected DNS config response from Pi-hole: {e}",
                status=response.status_code,
                body=response.text,
            ) from e

        if hosts is None:
            return []
        if not isinstance(hosts, list):
            raise DownstreamAPIError(
                f"Expected dns.hosts to be a list, got {type(hosts).__name__}",
                status=response.status_code,
                body=response.text,
            )
        return hosts

    def get_records(self) -> Dict[str, str]:
        """Return the existing local DNS records as hostname -> address."""
        return parse_hosts(self.get_hosts())

    def add_record(self, hostname: str, address: str) -> None:
        """Create a local DNS record.

        Raises:
            TransportError: Pi-hole could not be reached.
            DownstreamAPIError: Pi-hole rejected the write.
        """
        entry = HostEntry(address=address, hostname=hostname)
        if self._write_mode is WriteMode.ITEM:
            response = self._request("PUT", f"/api/config/dns/hosts/{quote(entry.line, safe='')}")
        else:
            hosts = self.get_hosts()
            if entry.line in hosts:
                logger.debug(f"Host entry '{entry.line}' already present, not rewriting")
                return
            payload = {"dns": {"hosts": hosts + [entry.line]}}
            response = self._request("PUT", "/api/config/dns", json=payload)

        if response.status_code not in WRITE_SUCCESS_CODES:
            raise DownstreamAPIError(
                f"Pi-hole API returned {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )
