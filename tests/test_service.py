"""Tests for the process runner."""

import pytest

from tokenkv.backends.memory import MemoryBackend
from tokenkv.config import Config
from tokenkv.exceptions import BackendUnavailableError, ConfigError
from tokenkv.service import build_servers, check, serve
from tokenkv.store import KVStore


class DownBackend(MemoryBackend):
    """Backend that connects but fails its health check."""

    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    async def ping(self) -> bool:
        return False

    async def close(self) -> None:
        self.closed = True


def make_config(**server) -> Config:
    return Config.from_dict({"backend": {"backend": "memory"}, "server": server})


class TestBuildServers:
    """Tests for build_servers."""

    def test_both_adapters(self) -> None:
        """Both adapters get their own server on their own port."""
        config = make_config(host="127.0.0.1", http_port=8080, rpc_port=9090)
        servers = build_servers(config, KVStore(MemoryBackend()))

        assert [(s.config.host, s.config.port) for s in servers] == [
            ("127.0.0.1", 8080),
            ("127.0.0.1", 9090),
        ]

    def test_single_adapter(self) -> None:
        """Disabled adapters are skipped."""
        config = make_config(enable_http=False)
        servers = build_servers(config, KVStore(MemoryBackend()))

        assert [s.config.port for s in servers] == [config.server.rpc_port]

    def test_no_adapters(self) -> None:
        """Disabling everything is a configuration error."""
        config = make_config(enable_http=False, enable_rpc=False)
        with pytest.raises(ConfigError):
            build_servers(config, KVStore(MemoryBackend()))


class TestServe:
    """Tests for serve and check."""

    @pytest.mark.asyncio
    async def test_unhealthy_backend_refuses_to_start(self) -> None:
        """serve fails fast and closes the backend when it is unreachable."""
        backend = DownBackend()

        with pytest.raises(BackendUnavailableError):
            await serve(make_config(), KVStore(backend))

        assert backend.closed

    @pytest.mark.asyncio
    async def test_check_memory_backend(self) -> None:
        """check reports a reachable backend."""
        assert await check(make_config()) is True
