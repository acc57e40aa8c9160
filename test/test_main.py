"""
Tests for the StatsServer composition root and command-line entry point.
"""

from unittest.mock import Mock, patch

import httpx
import pytest

from spotistats.errors import UnauthorizedError, UpstreamUnavailableError
from spotistats.main import StatsServer, main


class FailingTokenSource:
    def __init__(self, error):
        self.error = error

    async def get_token(self):
        raise self.error

    def invalidate(self):
        pass


@pytest.fixture
def env(monkeypatch, tmp_path):
    # setenv first so undo also removes anything load_dotenv adds
    for key in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTIFY_REFRESH_TOKEN", "PORT", "HOST"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return tmp_path


def test_server_wires_components(config, token_source, spotify_transport):
    server = StatsServer(config, token_source=token_source, http_client=httpx.AsyncClient(transport=spotify_transport))

    assert server.aggregator.client is server.client
    assert server.snapshot_cache.aggregator is server.aggregator
    assert server.snapshot_cache.ttl_seconds == config.cache_ttl_seconds
    assert server.web_app.state.snapshot_cache is server.snapshot_cache


@pytest.mark.asyncio
async def test_check_refresh_token_accepts_nothing_playing(config, token_source, spotify_responses, spotify_transport):
    spotify_responses["/me/player/currently-playing"] = (204, None)
    server = StatsServer(config, token_source=token_source, http_client=httpx.AsyncClient(transport=spotify_transport))

    await server.check_refresh_token()


@pytest.mark.asyncio
async def test_check_refresh_token_raises_unauthorized(config):
    server = StatsServer(config, token_source=FailingTokenSource(UnauthorizedError("unauthorized")))

    with pytest.raises(UnauthorizedError):
        await server.check_refresh_token()


def test_run_refuses_to_start_with_bad_token(config):
    server = StatsServer(config, token_source=FailingTokenSource(UnauthorizedError("unauthorized")))

    with patch("spotistats.main.uvicorn.Server") as mock_server:
        assert server.run() == 1
    mock_server.assert_not_called()


def test_run_starts_despite_transient_check_failure(config):
    server = StatsServer(config, token_source=FailingTokenSource(UpstreamUnavailableError("down")))

    with patch("spotistats.main.uvicorn.Server") as mock_server:
        assert server.run() == 0
    mock_server.return_value.run.assert_called_once()


def test_main_fails_without_credentials(env):
    assert main(["--env-file", str(env / "missing.env")]) == 2


def test_main_loads_env_file_and_overrides_port(env):
    env_file = env / ".env"
    env_file.write_text(
        "SPOTIFY_CLIENT_ID=id\nSPOTIFY_CLIENT_SECRET=secret\nSPOTIFY_REFRESH_TOKEN=refresh\n"
    )

    with patch("spotistats.main.StatsServer") as mock_server_cls:
        mock_server_cls.return_value.run = Mock(return_value=0)
        assert main(["--env-file", str(env_file), "--port", "9999", "--skip-token-check"]) == 0

    config = mock_server_cls.call_args.args[0]
    assert config.client_id == "id"
    assert config.port == 9999
    mock_server_cls.return_value.run.assert_called_once_with(check_token=False)
    mock_server_cls.return_value.stop.assert_called_once()
