"""工具模块

核心工具在任何平台上都会注册，平台专属工具按优先级从高到低注册。
工具模块只依赖 Executor 与 PlatformContext，不直接接触连接管理器。
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger
from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.platforms.types import PlatformCapability, ToolModule
from ssh_sre_mcp.tools.docker_tools import register_docker_tools
from ssh_sre_mcp.tools.health_tools import register_health_tools
from ssh_sre_mcp.tools.log_tools import register_log_tools
from ssh_sre_mcp.tools.system_tools import register_system_tools
from ssh_sre_mcp.tools.vm_tools import register_vm_tools

if TYPE_CHECKING:
    from ssh_sre_mcp.platforms.types import Platform

CORE_TOOL_MODULES: tuple[ToolModule, ...] = (
    ToolModule(name="system", register=register_system_tools),
    ToolModule(name="docker", register=register_docker_tools),
    ToolModule(name="log", register=register_log_tools),
    ToolModule(name="vm", register=register_vm_tools),
    ToolModule(name="health", register=register_health_tools),
)


def load_tools(
    mcp: FastMCP,
    executor: Executor,
    platform: Platform,
    capabilities: PlatformCapability | None = None,
) -> list[str]:
    """注册核心工具与平台专属工具。

    Returns:
        已注册的工具模块名（按注册顺序）
    """
    context = platform.context(capabilities)
    loaded: list[str] = []

    for module in CORE_TOOL_MODULES:
        module.register(mcp, executor, context)
        loaded.append(module.name)

    for module in sorted(platform.tool_modules, key=lambda m: m.priority, reverse=True):
        logger.info("加载平台工具模块: {}", module.name)
        module.register(mcp, executor, context)
        loaded.append(module.name)

    logger.info("已为平台 {} 加载工具模块: {}", platform.display_name, ", ".join(loaded))
    return loaded
