"""SSHExecutor 单元测试模块

覆盖以下场景：
- 退出码非零且 stderr 非空时抛出 CommandError，命令预览被截断
- 退出码非零但 stderr 为空时返回 stdout
- 连接错误原样传播
- 与真实 ConnectionManager 组合的端到端读取
"""
import pytest

from ssh_sre_mcp.connection_manager import ConnectionManager
from ssh_sre_mcp.exceptions import CommandError, SSHConnectionError
from ssh_sre_mcp.executor import SSHExecutor, command_preview
from ssh_sre_mcp.settings import SSHSRESettings
from ssh_sre_mcp.transport import CommandResult, SessionTransport

MDCMD_OUTPUT = "mdState=STARTED\nmdResync=0\nmdNumDisks=5\n"


class FakeManager:
    def __init__(self, result: CommandResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.commands: list[str] = []

    async def execute_command(self, command: str) -> CommandResult:
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


class UnraidTransport(SessionTransport):
    endpoint = "root@tower:22"

    def __init__(self) -> None:
        self.alive = False

    async def open(self) -> None:
        self.alive = True

    async def close(self) -> None:
        self.alive = False

    def is_alive(self) -> bool:
        return self.alive

    async def run(self, command: str) -> CommandResult:
        if command == "cat /proc/mdcmd":
            return CommandResult(stdout=MDCMD_OUTPUT, stderr="", exit_code=0)
        return CommandResult(stdout="", stderr=f"{command}: not found", exit_code=127)


class TestCommandPreview:
    """命令预览测试组。"""

    def test_short_command_unchanged(self) -> None:
        assert command_preview("uptime") == "uptime"

    def test_long_command_truncated(self) -> None:
        preview = command_preview("x" * 250)
        assert preview == "x" * 100 + "..."


class TestExecute:
    """执行约定测试组。"""

    @pytest.mark.asyncio
    async def test_success_returns_stdout(self) -> None:
        executor = SSHExecutor(FakeManager(CommandResult("up 3 days\n", "", 0)))
        assert await executor("uptime") == "up 3 days\n"

    @pytest.mark.asyncio
    async def test_failure_with_stderr_raises(self) -> None:
        command = "ls " + "x" * 250
        manager = FakeManager(CommandResult("", "No such file or directory", 1))
        executor = SSHExecutor(manager)

        with pytest.raises(CommandError) as exc_info:
            await executor.execute(command)

        err = exc_info.value
        assert err.exit_status == 1
        assert err.stderr == "No such file or directory"
        assert err.command == command[:100] + "..."
        assert len(err.command) == 103
        assert "exit 1" in err.message
        assert "No such file or directory" in err.message
        assert command not in err.message

    @pytest.mark.asyncio
    async def test_failure_without_stderr_returns_stdout(self) -> None:
        executor = SSHExecutor(FakeManager(CommandResult("partial\n", "", 1)))
        assert await executor("grep -c foo /etc/hosts") == "partial\n"

    @pytest.mark.asyncio
    async def test_stderr_on_success_is_ignored(self) -> None:
        executor = SSHExecutor(FakeManager(CommandResult("ok", "warning: deprecated", 0)))
        assert await executor("docker ps") == "ok"

    @pytest.mark.asyncio
    async def test_custom_preview_length(self) -> None:
        executor = SSHExecutor(FakeManager(CommandResult("", "boom", 2)), preview_length=10)
        with pytest.raises(CommandError) as exc_info:
            await executor("abcdefghijklmnop")
        assert exc_info.value.command == "abcdefghij..."

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self) -> None:
        executor = SSHExecutor(FakeManager(error=SSHConnectionError("down")))
        with pytest.raises(SSHConnectionError):
            await executor("uptime")


class TestEndToEnd:
    """与 ConnectionManager 组合测试组。"""

    @pytest.mark.asyncio
    async def test_read_mdcmd_through_manager(self) -> None:
        manager = ConnectionManager(
            settings=SSHSRESettings(host="tower", username="root"),
            transport_factory=UnraidTransport,
        )
        executor = SSHExecutor(manager)

        assert await executor("cat /proc/mdcmd") == MDCMD_OUTPUT
        with pytest.raises(CommandError) as exc_info:
            await executor("mdcmd status")
        assert exc_info.value.exit_status == 127
        await manager.disconnect()
