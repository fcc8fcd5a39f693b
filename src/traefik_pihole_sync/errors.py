"""Exceptions raised while syncing Traefik routes into Pi-hole."""

from __future__ import annotations

from typing import List, Optional


class SyncError(Exception):
    """Base class for every failure of a sync pass."""


class TransportError(SyncError):
    """A peer could not be reached or did not answer in time."""


class RouteSourceError(SyncError):
    """Traefik answered with a non-success status code."""

    def __init__(self, status: int, body: str):
        super().__init__(f"Traefik API returned {status}: {body}")
        self.status = status
        self.body = body


class UpstreamFormatError(SyncError):
    """Traefik's router listing matched none of the known response shapes."""

    def __init__(self, message: str, body: str):
        super().__init__(f"{message}: {body}")
        self.body = body


class AuthenticationError(SyncError):
    """Pi-hole refused the password or returned no usable session id."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class DownstreamAPIError(SyncError):
    """Pi-hole answered a read or write with a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ConfigurationError(Exception):
    """Required settings are missing or invalid; the process cannot start."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
