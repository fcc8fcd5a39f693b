"""Unit tests for TraefikRouteSource and router listing decoding."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from traefik_pihole_sync.errors import RouteSourceError, TransportError, UpstreamFormatError
from traefik_pihole_sync.traefik import (
    Route,
    RouteStatus,
    TraefikRouteSource,
    decode_routers,
    extract_hostnames,
)

ROUTERS = [
    {
        "entryPoints": ["websecure"],
        "service": "app",
        "rule": "Host(`app.example.com`)",
        "status": "enabled",
        "using": ["websecure"],
        "name": "app@docker",
        "provider": "docker",
    },
    {
        "entryPoints": ["web"],
        "service": "api@internal",
        "rule": "Host(`traefik.example.com`) && PathPrefix(`/api`)",
        "status": "enabled",
        "name": "dashboard@file",
        "provider": "file",
    },
]


def make_response(status_code: int = 200, body: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = body
    return response


class TestDecodeRouters:
    """Tests for decoding both router listing shapes."""

    def test_decode_array_shape(self) -> None:
        """Array of routers is keyed by each router's name."""
        routes = decode_routers(json.dumps(ROUTERS))

        assert set(routes) == {"app@docker", "dashboard@file"}
        app = routes["app@docker"]
        assert app.rule == "Host(`app.example.com`)"
        assert app.status is RouteStatus.ENABLED
        assert app.entry_points == ("websecure",)
        assert app.service == "app"
        assert app.provider == "docker"
        assert app.using == ("websecure",)

    def test_decode_object_shape(self) -> None:
        """Object of routers uses the keys as names when entries carry none."""
        body = {
            "app@docker": {"rule": "Host(`app.example.com`)", "status": "enabled"},
        }
        routes = decode_routers(json.dumps(body))

        assert routes == {
            "app@docker": Route(
                name="app@docker",
                rule="Host(`app.example.com`)",
                status=RouteStatus.ENABLED,
            )
        }

    def test_both_shapes_yield_same_hostnames(self) -> None:
        """Identical routers in either shape produce identical hostname sets."""
        as_list = decode_routers(json.dumps(ROUTERS))
        as_map = decode_routers(json.dumps({r["name"]: r for r in ROUTERS}))

        assert as_list == as_map
        assert extract_hostnames(as_list) == extract_hostnames(as_map)
        assert extract_hostnames(as_list) == {"app.example.com", "traefik.example.com"}

    def test_decode_skips_non_dict_entries(self) -> None:
        """Invalid entries are skipped without dropping the valid ones."""
        body = [ROUTERS[0], "not_a_dict", 123, None]
        routes = decode_routers(json.dumps(body))

        assert list(routes) == ["app@docker"]

    def test_decode_rejects_invalid_json(self) -> None:
        """A body that is not JSON raises UpstreamFormatError with the raw body."""
        with pytest.raises(UpstreamFormatError) as exc_info:
            decode_routers("<html>Bad Gateway</html>")

        assert exc_info.value.body == "<html>Bad Gateway</html>"

    def test_decode_rejects_unexpected_shape(self) -> None:
        """A JSON scalar matches neither shape."""
        with pytest.raises(UpstreamFormatError) as exc_info:
            decode_routers('"routers"')

        assert exc_info.value.body == '"routers"'

    def test_unknown_status_maps_to_other(self) -> None:
        routes = decode_routers(json.dumps([{"name": "x", "status": "starting"}]))
        assert routes["x"].status is RouteStatus.OTHER


class TestTraefikRouteSource:
    """Tests for fetching routers from the Traefik API."""

    def test_fetch_routes_success(self) -> None:
        source = TraefikRouteSource("http://traefik:8080/api/http/routers", timeout_seconds=3)

        with patch.object(source._session, "get") as mock_get:
            mock_get.return_value = make_response(200, json.dumps(ROUTERS))

            routes = source.fetch_routes()

            assert set(routes) == {"app@docker", "dashboard@file"}
            mock_get.assert_called_once_with("http://traefik:8080/api/http/routers", timeout=3)

    def test_fetch_routes_non_200_raises_route_source_error(self) -> None:
        """Non-success status carries the status code and body."""
        source = TraefikRouteSource()

        with patch.object(source._session, "get") as mock_get:
            mock_get.return_value = make_response(503, "service unavailable")

            with pytest.raises(RouteSourceError) as exc_info:
                source.fetch_routes()

            assert exc_info.value.status == 503
            assert exc_info.value.body == "service unavailable"

    def test_fetch_routes_connection_error_raises_transport_error(self) -> None:
        source = TraefikRouteSource()

        with patch.object(source._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("Connection refused")

            with pytest.raises(TransportError):
                source.fetch_routes()

    def test_fetch_routes_timeout_raises_transport_error(self) -> None:
        source = TraefikRouteSource()

        with patch.object(source._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.Timeout("timed out")

            with pytest.raises(TransportError):
                source.fetch_routes()

    def test_fetch_routes_is_not_retried(self) -> None:
        """A failed fetch is attempted exactly once."""
        source = TraefikRouteSource()

        with patch.object(source._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("Connection refused")

            with pytest.raises(TransportError):
                source.fetch_routes()

            assert mock_get.call_count == 1

    def test_fetch_routes_bad_body_raises_format_error(self) -> None:
        source = TraefikRouteSource()

        with patch.object(source._session, "get") as mock_get:
            mock_get.return_value = make_response(200, "not json {{{")

            with pytest.raises(UpstreamFormatError):
                source.fetch_routes()

    def test_provider_name(self) -> None:
        assert TraefikRouteSource().name == "Traefik"
