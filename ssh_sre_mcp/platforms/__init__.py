"""平台抽象层

提供平台描述类型、注册表与内置平台（通用 Linux、Unraid）。
"""
from __future__ import annotations

from loguru import logger

from ssh_sre_mcp.platforms.capabilities import probe_capabilities
from ssh_sre_mcp.platforms.linux import LINUX_PLATFORM
from ssh_sre_mcp.platforms.registry import PlatformRegistry
from ssh_sre_mcp.platforms.types import (
    DetectionProbe,
    Platform,
    PlatformCapability,
    PlatformContext,
    PlatformPaths,
    ToolModule,
)
from ssh_sre_mcp.platforms.unraid import UNRAID_PLATFORM

BUILTIN_PLATFORMS: tuple[Platform, ...] = (LINUX_PLATFORM, UNRAID_PLATFORM)


def create_platform_registry(*, fallback_id: str = LINUX_PLATFORM.id) -> PlatformRegistry:
    """创建并填充内置平台的注册表。"""
    registry = PlatformRegistry(fallback_id=fallback_id)
    for platform in BUILTIN_PLATFORMS:
        registry.register(platform)
    logger.info(
        "平台注册表已初始化，共{}个平台: {}",
        len(registry.list_ids()),
        ", ".join(registry.list_ids()),
    )
    return registry


__all__ = [
    "BUILTIN_PLATFORMS",
    "DetectionProbe",
    "LINUX_PLATFORM",
    "Platform",
    "PlatformCapability",
    "PlatformContext",
    "PlatformPaths",
    "PlatformRegistry",
    "ToolModule",
    "UNRAID_PLATFORM",
    "create_platform_registry",
    "probe_capabilities",
]
