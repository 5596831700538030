"""SSH SRE MCP Server 模块

通过单个受管SSH会话对远程主机进行运维（存储阵列、容器、虚拟机、日志）。
启动流程：
1. 解析凭据并尝试首次连接（失败只记录警告，首次执行命令时会再次连接）
2. 通过执行器探测平台（只执行一次），并探测主机能力
3. 为识别出的平台注册工具
4. 通过 stdio 提供 MCP 服务；收到 SIGINT/SIGTERM 或服务结束时断开连接

使用方式：
    通过 stdio 启动 MCP 服务器，供 Claude Desktop 等客户端调用。
"""
from __future__ import annotations

import signal
import sys
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from io import TextIOWrapper
from pathlib import Path
from tempfile import gettempdir
from typing import Any, Literal, cast

import anyio
from loguru import logger
from mcp.server.fastmcp import FastMCP
from mcp.server.stdio import stdio_server

from ssh_sre_mcp import __version__
from ssh_sre_mcp.auth_manager import AuthManager
from ssh_sre_mcp.connection_manager import ConnectionManager, TransportFactory
from ssh_sre_mcp.exceptions import SSHMCPError
from ssh_sre_mcp.executor import SSHExecutor
from ssh_sre_mcp.platforms import (
    Platform,
    PlatformCapability,
    PlatformRegistry,
    create_platform_registry,
    probe_capabilities,
)
from ssh_sre_mcp.settings import SSHSRESettings
from ssh_sre_mcp.tools import load_tools
from ssh_sre_mcp.transport import AsyncSSHTransport

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class ServerRuntime:
    """启动阶段计算出的运行时依赖，显式传给服务器与工具注册。"""

    settings: SSHSRESettings
    manager: ConnectionManager
    executor: SSHExecutor
    platform: Platform
    capabilities: PlatformCapability | None = None


async def bootstrap(
    settings: SSHSRESettings,
    *,
    transport_factory: TransportFactory | None = None,
    registry: PlatformRegistry | None = None,
) -> ServerRuntime:
    """建立连接、识别平台并返回运行时。

    Raises:
        CredentialError: 未配置主机或凭据
        DetectionError: 兜底平台未注册
    """
    if transport_factory is None:
        credentials = AuthManager().resolve(settings)
        transport_factory = partial(AsyncSSHTransport, settings=settings, credentials=credentials)

    manager = ConnectionManager(settings=settings, transport_factory=transport_factory)
    try:
        logger.info("正在连接SSH服务器...")
        await manager.connect()
    except SSHMCPError as exc:
        logger.warning("初始SSH连接失败，将在首次执行命令时重试: {}", exc)

    executor = SSHExecutor(manager, preview_length=settings.command_preview_length)
    if registry is None:
        registry = create_platform_registry(fallback_id=settings.fallback_platform)

    try:
        platform = await registry.detect(executor)
        capabilities = await probe_capabilities(executor)
    except BaseException:
        await manager.disconnect()
        raise

    return ServerRuntime(
        settings=settings,
        manager=manager,
        executor=executor,
        platform=platform,
        capabilities=capabilities,
    )


def create_mcp_server(runtime: ServerRuntime) -> FastMCP:
    settings = runtime.settings
    manager = runtime.manager

    @asynccontextmanager
    async def lifespan(_app: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await manager.disconnect()

    mcp = FastMCP(
        name="ssh-sre-mcp",
        instructions=(
            f"通过SSH对远程主机({runtime.platform.display_name})进行只读巡检与运维："
            "系统、Docker、日志、虚拟机以及平台专属工具"
        ),
        log_level=cast(LogLevel, settings.log_level.upper()),
        lifespan=lifespan,
    )

    load_tools(mcp, runtime.executor, runtime.platform, runtime.capabilities)

    @mcp.tool()
    async def session_info() -> dict[str, Any]:
        """查看SSH会话与平台识别状态。

        Returns:
            dict: 平台、主机能力、连接状态、熔断状态与排队命令数
        """
        capabilities = runtime.capabilities
        return {
            "version": __version__,
            "platform": {
                "id": runtime.platform.id,
                "display_name": runtime.platform.display_name,
            },
            "capabilities": capabilities.to_dict() if capabilities is not None else None,
            "connection": {
                "host": settings.host,
                "port": settings.port,
                "state": manager.state.value,
                "connected": manager.is_connected(),
                "consecutive_failures": manager.consecutive_failures,
                "circuit_open": manager.circuit_open,
                "pending_commands": manager.pending_count,
            },
        }

    return mcp


async def _watch_signals(scope: anyio.CancelScope) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("收到信号 {}，正在关闭...", signal.Signals(signum).name)
            scope.cancel()
            return


async def _serve_stdio(server: FastMCP) -> None:
    stdin = anyio.wrap_file(
        TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
    )
    stdout = anyio.wrap_file(
        TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    )
    async with stdio_server(stdin=stdin, stdout=stdout) as (read_stream, write_stream):
        lowlevel = cast(Any, server)._mcp_server
        await lowlevel.run(
            read_stream,
            write_stream,
            lowlevel.create_initialization_options(),
        )


def run_stdio_server(settings: SSHSRESettings) -> None:
    async def _run() -> None:
        runtime = await bootstrap(settings)
        try:
            server = create_mcp_server(runtime)
            logger.info(
                "SSH SRE MCP 服务器已就绪 (stdio)，平台: {} ({})",
                runtime.platform.display_name,
                runtime.platform.id,
            )
            async with anyio.create_task_group() as tg:
                if sys.platform != "win32":
                    tg.start_soon(_watch_signals, tg.cancel_scope)
                await _serve_stdio(server)
                tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await runtime.manager.disconnect()

    try:
        anyio.run(_run)
    except BaseException:
        error_path = Path(gettempdir()) / "ssh-sre-mcp-startup-error.log"
        with error_path.open("a", encoding="utf-8") as f:
            f.write("\n" + "=" * 80 + "\n")
            f.write(traceback.format_exc())
        raise
