from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from ssh_sre_mcp.connection_manager import ConnectionManager
from ssh_sre_mcp.exceptions import CommandError, SSHMCPError

# 工具模块唯一依赖的执行接口：命令文本 -> stdout
Executor = Callable[[str], Awaitable[str]]

# 执行器可能抛出的失败：自定义异常以及内置的连接、超时和系统错误
EXECUTION_ERRORS: tuple[type[BaseException], ...] = (
    SSHMCPError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    OSError,
)

DEFAULT_PREVIEW_LENGTH = 100


def command_preview(command: str, limit: int = DEFAULT_PREVIEW_LENGTH) -> str:
    if len(command) <= limit:
        return command
    return command[:limit] + "..."


class SSHExecutor:
    """把 CommandResult 转换为“失败即抛异常”的简化约定。

    退出码非零且 stderr 非空时抛出 CommandError；退出码非零但 stderr 为空时
    原样返回 stdout（部分状态检查命令依赖这一行为）。
    连接错误与超时原样向上传播。
    """

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
    ) -> None:
        self._manager = manager
        self._preview_length = preview_length

    async def execute(self, command: str) -> str:
        result = await self._manager.execute_command(command)
        if result.exit_code != 0 and result.stderr:
            preview = command_preview(command, self._preview_length)
            logger.debug("命令失败(exit {}): {}", result.exit_code, preview)
            raise CommandError(
                f"Command failed (exit {result.exit_code}): {preview}\n{result.stderr}",
                command=preview,
                exit_status=result.exit_code,
                stderr=result.stderr,
            )
        return result.stdout

    async def __call__(self, command: str) -> str:
        return await self.execute(command)
