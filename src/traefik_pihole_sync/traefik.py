"""Traefik router discovery.

Fetches the HTTP router listing from Traefik's API and turns the rules of the
enabled routers into the set of hostnames that should resolve to Traefik.

Traefik has served this listing in two shapes over time:

    [{"name": "app@docker", "rule": "Host(`app.example.com`)", ...}, ...]
    {"app@docker": {"rule": "Host(`app.example.com`)", ...}, ...}

Both decode to the same ``Dict[str, Route]``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple, Union

import requests

from .errors import RouteSourceError, TransportError, UpstreamFormatError

logger = logging.getLogger(__name__)

DEFAULT_ROUTERS_URL = "http://traefik:8080/api/http/routers"


# =============================================================================
# Data Classes
# =============================================================================


class RouteStatus(Enum):
    """Router status as reported by Traefik."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    WARNING = "warning"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "RouteStatus":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class Route:
    """A single Traefik HTTP router."""

    name: str
    rule: str = ""
    status: RouteStatus = RouteStatus.OTHER
    entry_points: Tuple[str, ...] = field(default_factory=tuple)
    service: str = ""
    provider: str = ""
    using: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_active(self) -> bool:
        return self.status is RouteStatus.ENABLED

    @classmethod
    def from_api(cls, data: Dict[str, Any], name: str = "") -> "Route":
        return cls(
            name=str(data.get("name") or name),
            rule=str(data.get("rule") or ""),
            status=RouteStatus.parse(data.get("status")),
            entry_points=_str_tuple(data.get("entryPoints")),
            service=str(data.get("service") or ""),
            provider=str(data.get("provider") or ""),
            using=_str_tuple(data.get("using")),
        )


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value)


# =============================================================================
# Response Decoding
# =============================================================================


def _decode_router_list(payload: Any) -> Optional[Dict[str, Route]]:
    """Decode the array shape, or return None if the payload is not a list."""
    if not isinstance(payload, list):
        return None

    routes: Dict[str, Route] = {}
    for item in payload:
        if not isinstance(item, dict):
            logger.debug(f"Skipping non-dict router entry: {item}")
            continue
        route = Route.from_api(item)
        routes[route.name] = route
    return routes


def _decode_router_map(payload: Any) -> Optional[Dict[str, Route]]:
    """Decode the object shape, or return None if the payload is not an object."""
    if not isinstance(payload, dict):
        return None

    routes: Dict[str, Route] = {}
    for key, item in payload.items():
        if not isinstance(item, dict):
            logger.debug(f"Skipping non-dict router entry '{key}': {item}")
            continue
        route = Route.from_api(item, name=str(key))
        routes[route.name] = route
    return routes


def decode_routers(body: str) -> Dict[str, Route]:
    """Decode a router listing body, trying the array shape before the object shape.

    Raises:
        UpstreamFormatError: if the body is not JSON or matches neither shape.
    """
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise UpstreamFormatError(f"Traefik response is not valid JSON ({e})", body) from e

    for decoder in (_decode_router_list, _decode_router_map):
        routes = decoder(payload)
        if routes is not None:
            return routes

    raise UpstreamFormatError(
        f"Unexpected Traefik response: expected list or object, got {type(payload).__name__}",
        body,
    )


# =============================================================================
# Route Source Client
# =============================================================================


class TraefikRouteSource:
    """Reads the router table from Traefik's API."""

    def __init__(self, url: str = DEFAULT_ROUTERS_URL, timeout_seconds: float = 10.0):
        self._url = url
        self._timeout = timeout_seconds
        self._session = requests.Session()

    @property
    def name(self) -> str:
        return "Traefik"

    def fetch_routes(self) -> Dict[str, Route]:
        try:
            response = self._session.get(self._url, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to reach Traefik at {self._url}: {e}") from e

        if response.status_code != 200:
            raise RouteSourceError(response.status_code, response.text)

        return decode_routers(response.text)


# =============================================================================
# Hostname Extraction
# =============================================================================

# Host(`a.example.com`) or Host(`a.example.com`, `b.example.com`)
HOST_RULE_RE = re.compile(r"\bHost\(\s*(`[^`]*`(?:\s*,\s*`[^`]*`)*)\s*\)")
HOST_LITERAL_RE = re.compile(r"`([^`]*)`")


def hostnames_from_rule(rule: str) -> Set[str]:
    """Extract the hostnames of every Host() clause in a router rule."""
    hostnames: Set[str] = set()
    for clause in HOST_RULE_RE.finditer(rule or ""):
        for literal in HOST_LITERAL_RE.finditer(clause.group(1)):
            hostname = literal.group(1).strip().strip("`").strip()
            if hostname:
                hostnames.add(hostname)
    return hostnames


def extract_hostnames(routes: Union[Mapping[str, Route], Iterable[Route]]) -> Set[str]:
    """Collect the hostnames routed by all enabled routers."""
    if isinstance(routes, Mapping):
        routes = routes.values()

    hostnames: Set[str] = set()
    for route in routes:
        if not route.is_active:
            logger.debug(f"Skipping router '{route.name}' (status: {route.status.value})")
            continue
        hostnames |= hostnames_from_rule(route.rule)
    return hostnames
