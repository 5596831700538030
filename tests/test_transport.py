"""AsyncSSHTransport 单元测试模块

使用 pytest-mock 替换 asyncssh.connect，不依赖真实SSH服务器。
"""
import asyncio
from types import SimpleNamespace

import asyncssh
import pytest

from ssh_sre_mcp.auth_manager import SSHCredentials
from ssh_sre_mcp.exceptions import SSHConnectionError
from ssh_sre_mcp.settings import SSHSRESettings
from ssh_sre_mcp.transport import AsyncSSHTransport, CommandResult


class FakeConnection:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result or SimpleNamespace(stdout="ok\n", stderr="", exit_status=0)
        self.error = error
        self.closed = False
        self.commands: list[str] = []
        self.run_options: list[dict] = []

    async def run(self, command: str, check: bool = False, **kwargs):
        self.commands.append(command)
        self.run_options.append({"check": check, **kwargs})
        if self.error is not None:
            raise self.error
        return self.result

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


def _make_transport(**overrides) -> AsyncSSHTransport:
    settings = SSHSRESettings(host="nas", username="root", **overrides)
    credentials = SSHCredentials(
        host="nas",
        username="root",
        password="secret",
        private_key_path="/id_ed25519",
    )
    return AsyncSSHTransport(settings=settings, credentials=credentials)


class TestOpen:
    """建立连接测试组。"""

    @pytest.mark.asyncio
    async def test_open_passes_connect_options(self, mocker) -> None:
        conn = FakeConnection()
        connect = mocker.patch("asyncssh.connect", new=mocker.AsyncMock(return_value=conn))
        transport = _make_transport(port=2222)

        await transport.open()

        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "nas"
        assert kwargs["port"] == 2222
        assert kwargs["username"] == "root"
        assert kwargs["password"] == "secret"
        assert kwargs["client_keys"] == ["/id_ed25519"]
        assert kwargs["known_hosts"] is None
        assert transport.is_alive()
        assert transport.endpoint == "root@nas:2222"

    @pytest.mark.asyncio
    async def test_open_wraps_os_error(self, mocker) -> None:
        mocker.patch(
            "asyncssh.connect",
            new=mocker.AsyncMock(side_effect=OSError("Connection refused")),
        )
        transport = _make_transport()

        with pytest.raises(SSHConnectionError) as exc_info:
            await transport.open()
        assert exc_info.value.host == "nas"
        assert not transport.is_alive()

    @pytest.mark.asyncio
    async def test_open_times_out(self, mocker) -> None:
        async def hang(**kwargs):
            await asyncio.sleep(5)

        mocker.patch("asyncssh.connect", new=hang)
        transport = _make_transport(connect_timeout_seconds=0.05)

        with pytest.raises(SSHConnectionError, match="超时"):
            await transport.open()


class TestRun:
    """执行命令测试组。"""

    @pytest.mark.asyncio
    async def test_run_collects_result(self, mocker) -> None:
        conn = FakeConnection(
            result=SimpleNamespace(stdout="", stderr=b"No such file", exit_status=2)
        )
        mocker.patch("asyncssh.connect", new=mocker.AsyncMock(return_value=conn))
        transport = _make_transport()
        await transport.open()

        result = await transport.run("ls /x")

        assert result == CommandResult(stdout="", stderr="No such file", exit_code=2)
        assert not result.ok
        assert conn.commands == ["ls /x"]

    @pytest.mark.asyncio
    async def test_run_decodes_invalid_utf8_with_replacement(self, mocker) -> None:
        conn = FakeConnection(
            result=SimpleNamespace(stdout="caf\ufffd\n", stderr="", exit_status=0)
        )
        mocker.patch("asyncssh.connect", new=mocker.AsyncMock(return_value=conn))
        transport = _make_transport()
        await transport.open()

        result = await transport.run("cat /var/log/binary.log")

        assert result.stdout == "caf\ufffd\n"
        assert conn.run_options == [{"check": False, "errors": "replace"}]

    @pytest.mark.asyncio
    async def test_run_missing_exit_status_is_zero(self, mocker) -> None:
        conn = FakeConnection(result=SimpleNamespace(stdout=None, stderr=None, exit_status=None))
        mocker.patch("asyncssh.connect", new=mocker.AsyncMock(return_value=conn))
        transport = _make_transport()
        await transport.open()

        result = await transport.run("true")

        assert result.to_dict() == {"stdout": "", "stderr": "", "exit_code": 0}

    @pytest.mark.asyncio
    async def test_run_wraps_transport_errors(self, mocker) -> None:
        conn = FakeConnection(error=asyncssh.ConnectionLost("lost"))
        mocker.patch("asyncssh.connect", new=mocker.AsyncMock(return_value=conn))
        transport = _make_transport()
        await transport.open()

        with pytest.raises(SSHConnectionError) as exc_info:
            await transport.run("uptime")
        assert exc_info.value.details["error"] == "ConnectionLost"

    @pytest.mark.asyncio
    async def test_run_without_session(self) -> None:
        transport = _make_transport()
        with pytest.raises(SSHConnectionError):
            await transport.run("uptime")


class TestClose:
    """关闭连接测试组。"""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, mocker) -> None:
        conn = FakeConnection()
        mocker.patch("asyncssh.connect", new=mocker.AsyncMock(return_value=conn))
        transport = _make_transport()
        await transport.open()

        await transport.close()
        await transport.close()

        assert conn.closed
        assert not transport.is_alive()
