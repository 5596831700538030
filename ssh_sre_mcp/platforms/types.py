"""平台描述相关的数据类型

平台识别被表示为有序的 (探测命令, 匹配器) 列表，按顺序短路求值；
新增平台只需要声明新的 Platform 实例，不需要修改识别流程。
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from ssh_sre_mcp.executor import Executor

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP

Matcher = Callable[[str], bool]

StorageType = Literal["zfs", "btrfs", "mdraid", "lvm", "ext4", "none"]
VirtualizationType = Literal["kvm", "lxc", "none"]
ContainerRuntime = Literal["docker", "podman", "none"]
InitSystem = Literal["systemd", "openrc", "sysv"]

# 标记型探测命令输出
PRESENT_MARKER = "present"
ABSENT_MARKER = "absent"


def marker_command(test: str) -> str:
    """把一个 shell 条件包装成总是成功退出、只输出标记的命令。"""
    return f"({test}) && echo {PRESENT_MARKER} || echo {ABSENT_MARKER}"


def marker_present(output: str) -> bool:
    return output.strip() == PRESENT_MARKER


def output_contains(needle: str, *, case_sensitive: bool = False) -> Matcher:
    if case_sensitive:
        return lambda output: needle in output
    lowered = needle.lower()
    return lambda output: lowered in output.lower()


@dataclass(frozen=True)
class DetectionProbe:
    """平台探测项。

    Attributes:
        command: 只读的探测命令
        matcher: 对命令输出的判定函数
        description: 日志中使用的简短说明
    """

    command: str
    matcher: Matcher
    description: str = ""

    @classmethod
    def marker(cls, test: str, description: str = "") -> DetectionProbe:
        return cls(
            command=marker_command(test),
            matcher=marker_present,
            description=description or test,
        )


@dataclass(frozen=True)
class PlatformPaths:
    log_dir: str = "/var/log"
    config_dir: str = "/etc"
    data_dir: str = "/home"
    cache_dir: str | None = None
    container_data_dir: str | None = None


@dataclass(frozen=True)
class PlatformCapability:
    """探测到的主机能力快照。"""

    storage: StorageType = "ext4"
    virtualization: VirtualizationType = "none"
    container_runtime: ContainerRuntime = "none"
    init_system: InitSystem = "systemd"

    def to_dict(self) -> dict[str, str]:
        return {
            "storage": self.storage,
            "virtualization": self.virtualization,
            "container_runtime": self.container_runtime,
            "init_system": self.init_system,
        }


@dataclass(frozen=True)
class PlatformContext:
    """工具模块注册时拿到的平台信息，显式传入而不是读取全局状态。"""

    platform_id: str
    display_name: str
    paths: PlatformPaths = field(default_factory=PlatformPaths)
    capabilities: PlatformCapability | None = None


ToolRegistrar = Callable[["FastMCP", Executor, PlatformContext], None]


@dataclass(frozen=True)
class ToolModule:
    """平台专属的工具模块。

    Attributes:
        name: 模块名，用于日志
        register: 注册函数
        priority: 优先级，越大越先注册
    """

    name: str
    register: ToolRegistrar
    priority: int = 0


@dataclass(frozen=True)
class Platform:
    """平台描述（注册后不可变）。

    Attributes:
        id: 唯一标识，如 ``unraid``
        display_name: 展示名称
        probes: 有序探测项，任一命中即识别为该平台
        priority: 识别优先级，越具体的平台越高
        paths: 平台相关目录
        tool_modules: 平台专属工具模块
    """

    id: str
    display_name: str
    probes: tuple[DetectionProbe, ...] = ()
    priority: int = 0
    paths: PlatformPaths = field(default_factory=PlatformPaths)
    tool_modules: tuple[ToolModule, ...] = ()

    def context(self, capabilities: PlatformCapability | None = None) -> PlatformContext:
        return PlatformContext(
            platform_id=self.id,
            display_name=self.display_name,
            paths=self.paths,
            capabilities=capabilities,
        )
