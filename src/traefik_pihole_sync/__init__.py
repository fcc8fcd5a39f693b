"""Sync Traefik router hostnames into Pi-hole local DNS records."""

__version__ = "1.0.0"
