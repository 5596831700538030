"""平台注册表模块

管理可用平台并在启动时完成一次性平台识别：
- 按优先级从高到低依次评估非兜底平台（同优先级按注册顺序）
- 单个平台的探测项按顺序短路求值，第一个命中的平台胜出
- 探测命令失败（连接错误、超时、命令错误）视为“不匹配”，只记录日志
- 都不匹配时返回兜底平台；兜底平台未注册才会抛出 DetectionError
"""
from __future__ import annotations

import asyncio

from loguru import logger

from ssh_sre_mcp.exceptions import DetectionError, PlatformRegistrationError
from ssh_sre_mcp.executor import EXECUTION_ERRORS, Executor
from ssh_sre_mcp.platforms.types import DetectionProbe, Platform


class PlatformRegistry:
    """平台注册表。

    Attributes:
        _fallback_id: 兜底平台ID
        _detected: 识别结果，进程生命周期内只设置一次
    """

    def __init__(self, *, fallback_id: str = "linux") -> None:
        self._platforms: dict[str, Platform] = {}
        self._fallback_id = fallback_id
        self._detected: Platform | None = None
        self._lock = asyncio.Lock()

    @property
    def fallback_id(self) -> str:
        return self._fallback_id

    @property
    def detected(self) -> Platform | None:
        return self._detected

    def register(self, platform: Platform) -> None:
        """注册平台。

        Raises:
            PlatformRegistrationError: ID重复或识别已完成
        """
        if self._detected is not None:
            raise PlatformRegistrationError(
                f"平台识别已完成，不能再注册平台: {platform.id}",
                platform_id=platform.id,
            )
        if platform.id in self._platforms:
            raise PlatformRegistrationError(
                f"平台ID重复: {platform.id}",
                platform_id=platform.id,
            )
        self._platforms[platform.id] = platform

    def get(self, platform_id: str) -> Platform | None:
        return self._platforms.get(platform_id)

    def list(self) -> list[Platform]:
        return list(self._platforms.values())

    def list_ids(self) -> list[str]:
        return list(self._platforms.keys())

    def candidates(self) -> list[Platform]:
        """按识别顺序返回非兜底平台。"""
        others = [p for p in self._platforms.values() if p.id != self._fallback_id]
        # sorted 是稳定排序，同优先级保持注册顺序
        return sorted(others, key=lambda p: p.priority, reverse=True)

    async def detect(self, executor: Executor) -> Platform:
        """识别目标主机平台。

        Args:
            executor: 命令执行函数

        Returns:
            Platform: 命中的平台或兜底平台

        Raises:
            DetectionError: 兜底平台未注册
        """
        async with self._lock:
            if self._detected is not None:
                return self._detected

            fallback = self._platforms.get(self._fallback_id)
            if fallback is None:
                raise DetectionError(
                    f"兜底平台未注册: {self._fallback_id}",
                    fallback_id=self._fallback_id,
                    details={"registered": self.list_ids()},
                )

            for platform in self.candidates():
                if await self._matches(platform, executor):
                    logger.info("识别到平台: {} ({})", platform.display_name, platform.id)
                    self._detected = platform
                    return platform

            if fallback.probes and not await self._matches(fallback, executor):
                logger.warning("目标主机未通过 {} 的探测，仍使用兜底平台", fallback.display_name)
            logger.warning("未识别到特定平台，使用兜底平台: {} ({})", fallback.display_name, fallback.id)
            self._detected = fallback
            return fallback

    async def _matches(self, platform: Platform, executor: Executor) -> bool:
        for probe in platform.probes:
            if await self._probe(platform, probe, executor):
                return True
        return False

    @staticmethod
    async def _probe(platform: Platform, probe: DetectionProbe, executor: Executor) -> bool:
        label = probe.description or probe.command
        try:
            output = await executor(probe.command)
        except EXECUTION_ERRORS as exc:
            logger.info("平台 {} 探测 [{}] 失败，视为不匹配: {}", platform.id, label, exc)
            return False

        matched = probe.matcher(output)
        logger.debug("平台 {} 探测 [{}]: {}", platform.id, label, "命中" if matched else "未命中")
        return matched
