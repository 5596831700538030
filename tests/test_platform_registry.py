"""PlatformRegistry 单元测试模块

覆盖以下场景：
- 注册、查询与重复ID
- 所有探测失败时返回兜底平台而不是抛出异常
- 优先级高的平台先评估并胜出
- 探测命令传输失败视为不匹配，继续评估后续探测/平台
- 兜底平台缺失时抛出 DetectionError
- 识别只执行一次
"""
import pytest

from ssh_sre_mcp.exceptions import (
    CommandError,
    DetectionError,
    PlatformRegistrationError,
    SSHConnectionError,
)
from ssh_sre_mcp.platforms import (
    LINUX_PLATFORM,
    UNRAID_PLATFORM,
    DetectionProbe,
    Platform,
    PlatformRegistry,
    create_platform_registry,
)
from ssh_sre_mcp.platforms.types import marker_command, output_contains


class FakeExecutor:
    """按命令返回预设输出；未配置的命令返回空字符串。"""

    def __init__(self, outputs: dict[str, object] | None = None) -> None:
        self.outputs = outputs or {}
        self.calls: list[str] = []

    async def __call__(self, command: str) -> str:
        self.calls.append(command)
        value = self.outputs.get(command, "")
        if isinstance(value, Exception):
            raise value
        return str(value)


def _platform(platform_id: str, command: str, priority: int = 0) -> Platform:
    return Platform(
        id=platform_id,
        display_name=platform_id.title(),
        probes=(DetectionProbe(command=command, matcher=output_contains("yes")),),
        priority=priority,
    )


def _registry(*platforms: Platform) -> PlatformRegistry:
    registry = PlatformRegistry(fallback_id="linux")
    registry.register(LINUX_PLATFORM)
    for platform in platforms:
        registry.register(platform)
    return registry


class TestRegistration:
    """注册测试组。"""

    def test_register_and_get(self) -> None:
        registry = _registry(_platform("alpha", "probe-alpha"))
        assert registry.get("alpha") is not None
        assert registry.get("missing") is None
        assert registry.list_ids() == ["linux", "alpha"]

    def test_duplicate_id_rejected(self) -> None:
        registry = _registry(_platform("alpha", "probe-alpha"))
        with pytest.raises(PlatformRegistrationError) as exc_info:
            registry.register(_platform("alpha", "other"))
        assert exc_info.value.platform_id == "alpha"

    def test_candidates_sorted_by_priority_then_registration(self) -> None:
        registry = _registry(
            _platform("low", "p1", priority=10),
            _platform("high", "p2", priority=50),
            _platform("low2", "p3", priority=10),
        )
        assert [p.id for p in registry.candidates()] == ["high", "low", "low2"]

    def test_builtin_registry(self) -> None:
        registry = create_platform_registry()
        assert set(registry.list_ids()) == {"linux", "unraid"}
        assert registry.fallback_id == "linux"


class TestDetect:
    """平台识别测试组。"""

    @pytest.mark.asyncio
    async def test_no_match_returns_fallback(self) -> None:
        registry = _registry(_platform("alpha", "probe-alpha"))
        platform = await registry.detect(FakeExecutor())
        assert platform is LINUX_PLATFORM
        assert registry.detected is LINUX_PLATFORM

    @pytest.mark.asyncio
    async def test_all_probes_failing_returns_fallback(self) -> None:
        registry = create_platform_registry()

        class FailingExecutor:
            async def __call__(self, command: str) -> str:
                raise SSHConnectionError("down")

        platform = await registry.detect(FailingExecutor())
        assert platform.id == "linux"

    @pytest.mark.asyncio
    async def test_specific_platform_beats_fallback(self) -> None:
        registry = _registry(_platform("alpha", "probe-alpha", priority=10))
        executor = FakeExecutor({"probe-alpha": "yes", LINUX_PLATFORM.probes[0].command: "Linux"})

        platform = await registry.detect(executor)

        assert platform.id == "alpha"
        assert LINUX_PLATFORM.probes[0].command not in executor.calls

    @pytest.mark.asyncio
    async def test_higher_priority_wins_regardless_of_registration_order(self) -> None:
        registry = _registry(
            _platform("generic", "probe-generic", priority=10),
            _platform("specific", "probe-specific", priority=90),
        )
        executor = FakeExecutor({"probe-generic": "yes", "probe-specific": "yes"})

        platform = await registry.detect(executor)

        assert platform.id == "specific"
        assert executor.calls == ["probe-specific"]

    @pytest.mark.asyncio
    async def test_probe_failure_moves_to_next_platform(self) -> None:
        registry = _registry(
            _platform("first", "probe-first", priority=90),
            _platform("second", "probe-second", priority=50),
        )
        executor = FakeExecutor(
            {
                "probe-first": SSHConnectionError("lost"),
                "probe-second": "yes",
            }
        )

        platform = await registry.detect(executor)

        assert platform.id == "second"
        assert executor.calls == ["probe-first", "probe-second"]

    @pytest.mark.asyncio
    async def test_probe_failure_moves_to_next_probe(self) -> None:
        platform = Platform(
            id="multi",
            display_name="Multi",
            probes=(
                DetectionProbe(command="a", matcher=output_contains("yes")),
                DetectionProbe(command="b", matcher=output_contains("yes")),
                DetectionProbe(command="c", matcher=output_contains("yes")),
            ),
            priority=10,
        )
        registry = _registry(platform)
        executor = FakeExecutor({"a": CommandError("boom"), "b": "yes", "c": "yes"})

        assert (await registry.detect(executor)).id == "multi"
        assert executor.calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_fallback_raises_detection_error(self) -> None:
        registry = PlatformRegistry(fallback_id="linux")
        registry.register(_platform("alpha", "probe-alpha"))
        executor = FakeExecutor({"probe-alpha": "yes"})

        with pytest.raises(DetectionError) as exc_info:
            await registry.detect(executor)

        assert exc_info.value.fallback_id == "linux"
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_detection_runs_once(self) -> None:
        registry = _registry(_platform("alpha", "probe-alpha", priority=10))
        executor = FakeExecutor({"probe-alpha": "yes"})

        first = await registry.detect(executor)
        second = await registry.detect(executor)

        assert first is second
        assert executor.calls == ["probe-alpha"]

    @pytest.mark.asyncio
    async def test_register_after_detection_rejected(self) -> None:
        registry = _registry()
        await registry.detect(FakeExecutor())
        with pytest.raises(PlatformRegistrationError):
            registry.register(_platform("late", "probe-late"))


class TestBuiltinPlatforms:
    """内置平台识别测试组。"""

    @pytest.mark.asyncio
    async def test_unraid_detected_by_ident_cfg(self) -> None:
        executor = FakeExecutor({marker_command("test -f /boot/config/ident.cfg"): "present\n"})
        platform = await create_platform_registry().detect(executor)
        assert platform is UNRAID_PLATFORM

    @pytest.mark.asyncio
    async def test_unraid_detected_by_version_file(self) -> None:
        executor = FakeExecutor(
            {
                marker_command("test -f /boot/config/ident.cfg"): "absent\n",
                marker_command("test -f /proc/mdcmd"): SSHConnectionError("lost"),
                "cat /etc/unraid-version 2>/dev/null || true": 'version="6.12.10"\n',
            }
        )
        platform = await create_platform_registry().detect(executor)
        assert platform.id == "unraid"

    @pytest.mark.asyncio
    async def test_plain_linux_host(self) -> None:
        executor = FakeExecutor(
            {
                marker_command("test -f /boot/config/ident.cfg"): "absent\n",
                marker_command("test -f /proc/mdcmd"): "absent\n",
                "uname -s 2>/dev/null || echo unknown": "Linux\n",
            }
        )
        platform = await create_platform_registry().detect(executor)
        assert platform.id == "linux"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [ConnectionError("reset by peer"), TimeoutError("timed out"), OSError("broken pipe")],
    )
    async def test_builtin_errors_count_as_no_match(self, error: Exception) -> None:
        executor = FakeExecutor(
            {
                marker_command("test -f /boot/config/ident.cfg"): error,
                marker_command("test -f /proc/mdcmd"): error,
                "cat /etc/unraid-version 2>/dev/null || true": error,
                "uname -s 2>/dev/null || echo unknown": error,
            }
        )
        platform = await create_platform_registry().detect(executor)
        assert platform is LINUX_PLATFORM
