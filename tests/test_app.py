"""End-to-end tests for the fetchkit CLI (request, cache and config commands)."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from fetchkit import __version__
from fetchkit.adapters.httpx_adapter import HttpxAdapter
from fetchkit.app import app, main
from fetchkit.config import load_global_config
from fetchkit.exceptions import FetchError, InvalidUsageError
from fetchkit.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_FOUND

runner = CliRunner()

API = "https://api.test"


@pytest.fixture
def mock_api(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> list[httpx.Request]:
    """Route the default adapter through an httpx.MockTransport.

    ``/missing`` answers 404; every other path echoes its path and query.
    Returns the list of requests the mock received.
    """
    received: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        if request.url.path == "/missing":
            return httpx.Response(404, json={"detail": "no such user"})
        body = json.loads(request.content) if request.content else None
        return httpx.Response(
            200,
            json={"path": request.url.path, "params": dict(request.url.params), "body": body},
        )

    real = HttpxAdapter
    monkeypatch.setattr(
        "fetchkit.adapters.httpx_adapter.HttpxAdapter",
        lambda: real(transport=httpx.MockTransport(handler)),
    )
    return received


def _invoke(*args: str, input: str | None = None):
    return runner.invoke(app, ["--no-color", *args], input=input)


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


class TestGlobalOptions:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"fetchkit {__version__}" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("request", "cache", "config"):
            assert name in result.output


# ---------------------------------------------------------------------------
# request
# ---------------------------------------------------------------------------


class TestRequestCommand:
    def test_get_prints_json(self, mock_api) -> None:
        result = _invoke("--json", "request", "GET", f"{API}/users", "-p", "page=2")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {
            "path": "/users",
            "params": {"page": "2"},
            "body": None,
        }

    def test_second_get_is_served_from_durable_cache(self, mock_api) -> None:
        first = _invoke("--json", "request", "GET", f"{API}/users")
        second = _invoke("--json", "request", "GET", f"{API}/users")
        assert first.exit_code == second.exit_code == 0
        assert first.stdout == second.stdout
        assert len(mock_api) == 1

    def test_no_cache(self, mock_api) -> None:
        _invoke("--json", "request", "GET", f"{API}/users", "--no-cache")
        _invoke("--json", "request", "GET", f"{API}/users", "--no-cache")
        assert len(mock_api) == 2

    def test_base_url_and_body(self, mock_api) -> None:
        result = _invoke(
            "--json",
            "request",
            "post",
            "/users",
            "--base-url",
            API,
            "-d",
            '{"name": "Ada"}',
            "-H",
            "X-Trace: 42",
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["body"] == {"name": "Ada"}
        assert mock_api[0].method == "POST"
        assert mock_api[0].headers["X-Trace"] == "42"

    def test_http_error_raises_classified_error(self, mock_api) -> None:
        result = _invoke("request", "GET", f"{API}/missing")
        assert isinstance(result.exception, FetchError)
        assert result.exception.status == 404
        assert result.exception.exit_code == EXIT_NOT_FOUND
        assert len(mock_api) == 1

    def test_malformed_param(self, mock_api) -> None:
        result = _invoke("request", "GET", f"{API}/users", "-p", "no-equals")
        assert isinstance(result.exception, InvalidUsageError)


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


class TestCacheCommands:
    def test_keys_empty(self, isolated_config: Path) -> None:
        result = _invoke("cache", "keys")
        assert result.exit_code == 0
        assert "Cache is empty." in result.output

    def test_keys_stats_delete(self, mock_api) -> None:
        _invoke("request", "GET", f"{API}/users")
        key = f"GET:{API}/users::"

        keys = _invoke("--json", "cache", "keys")
        assert json.loads(keys.stdout) == [{"key": key}]

        stats = _invoke("--json", "cache", "stats")
        data = json.loads(stats.stdout)
        assert data["backend"] == "local"
        assert data["namespace"] == "fk_cache:"
        assert data["entries"] == 1

        deleted = _invoke("cache", "delete", key)
        assert deleted.exit_code == 0
        assert f"Removed {key}" in deleted.output

        missing = _invoke("cache", "delete", key)
        assert "No cache entry" in missing.output

    def test_cleanup(self, isolated_config: Path) -> None:
        result = _invoke("cache", "cleanup")
        assert result.exit_code == 0
        assert "Removed 0 expired entries." in result.output

    def test_clear_with_force(self, mock_api) -> None:
        _invoke("request", "GET", f"{API}/users")
        result = _invoke("--force", "cache", "clear")
        assert result.exit_code == 0
        assert "Cache cleared." in result.output
        assert "Cache is empty." in _invoke("cache", "keys").output

    def test_clear_declined(self, mock_api) -> None:
        _invoke("request", "GET", f"{API}/users")
        result = _invoke("cache", "clear", input="n\n")
        assert result.exit_code == 0
        assert "Cancelled." in result.output
        assert len(json.loads(_invoke("--json", "cache", "keys").stdout)) == 1


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_show(self, isolated_config: Path) -> None:
        result = _invoke("--json", "--quiet", "config", "show")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["client"]["retry"]["count"] == 3

    @pytest.mark.parametrize(
        ("key", "value", "expected"),
        [
            ("client.retry.count", "5", 5),
            ("client.timeout", "2.5", 2.5),
            ("client.dedupe", "off", False),
            ("client.cacheable_methods", "GET, HEAD, OPTIONS", ["GET", "HEAD", "OPTIONS"]),
            ("client.persistence.kind", "session", "session"),
            ("client.persistence.max_size", "1024", 1024),
            ("client.cache.stale_time", "10", 10),
            ("client.cache.revalidate", "no", False),
        ],
    )
    def test_set(self, isolated_config: Path, key: str, value: str, expected) -> None:
        result = _invoke("config", "set", key, value)
        assert result.exit_code == 0, result.output

        current = load_global_config().model_dump(mode="json")
        for part in key.split("."):
            current = current[part]
        assert current == expected

    def test_set_headers_as_json(self, isolated_config: Path) -> None:
        _invoke("config", "set", "client.default_headers", '{"Accept": "application/json"}')
        assert load_global_config().client.default_headers == {"Accept": "application/json"}

    def test_set_unknown_key(self, isolated_config: Path) -> None:
        result = _invoke("config", "set", "client.nope", "1")
        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    @pytest.mark.parametrize(
        ("key", "value"),
        [("client.retry.count", "many"), ("client.persistence.kind", "redis")],
    )
    def test_set_invalid_value(self, isolated_config: Path, key: str, value: str) -> None:
        result = _invoke("config", "set", key, value)
        assert result.exit_code == 2
        assert "Invalid value" in result.output

    def test_reset(self, isolated_config: Path) -> None:
        _invoke("config", "set", "client.retry.count", "9")
        result = _invoke("--force", "config", "reset")
        assert result.exit_code == 0
        assert load_global_config().client.retry.count == 3


# ---------------------------------------------------------------------------
# main() exit-code mapping
# ---------------------------------------------------------------------------


class TestMain:
    @pytest.fixture(autouse=True)
    def _no_signal_handlers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("fetchkit.app._setup_signal_handlers", lambda: None)

    def test_fetch_error_maps_to_exit_code(
        self, mock_api, monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        monkeypatch.setattr(
            sys, "argv", ["fetchkit", "--no-color", "request", "GET", f"{API}/missing"]
        )
        with pytest.raises(SystemExit) as info:
            main()
        assert info.value.code == EXIT_NOT_FOUND
        assert "Error: HTTP 404: no such user" in capsys.readouterr().err

    def test_unexpected_error_writes_crash_log(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def explode() -> None:
            raise RuntimeError("kaboom")

        monkeypatch.setattr("fetchkit.app.app", explode)
        with pytest.raises(SystemExit) as info:
            main()

        assert info.value.code == EXIT_GENERIC_FAILURE
        logs = list((isolated_config / "data" / "fetchkit" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "kaboom" in logs[0].read_text()

    def test_keyboard_interrupt(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def interrupt() -> None:
            raise KeyboardInterrupt

        monkeypatch.setattr("fetchkit.app.app", interrupt)
        with pytest.raises(SystemExit) as info:
            main()
        assert info.value.code == 130
