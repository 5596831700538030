"""主机能力探测

每种能力是一组有序规则，第一条探测成功的规则决定取值，都不成功时使用默认值。
探测失败（连接错误、超时等）视为规则不成立。
"""
from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ssh_sre_mcp.executor import EXECUTION_ERRORS, Executor
from ssh_sre_mcp.platforms.types import PlatformCapability, marker_command, marker_present


@dataclass(frozen=True)
class CapabilityRule:
    test: str
    value: str


CONTAINER_RUNTIME_RULES: tuple[CapabilityRule, ...] = (
    CapabilityRule("command -v docker >/dev/null 2>&1", "docker"),
    CapabilityRule("command -v podman >/dev/null 2>&1", "podman"),
)

VIRTUALIZATION_RULES: tuple[CapabilityRule, ...] = (
    CapabilityRule("command -v virsh >/dev/null 2>&1", "kvm"),
    CapabilityRule("test -d /sys/class/lxc", "lxc"),
)

INIT_SYSTEM_RULES: tuple[CapabilityRule, ...] = (
    CapabilityRule("test -d /run/systemd/system", "systemd"),
    CapabilityRule("test -f /sbin/openrc", "openrc"),
)

STORAGE_RULES: tuple[CapabilityRule, ...] = (
    CapabilityRule("command -v zpool >/dev/null 2>&1 && zpool list >/dev/null 2>&1", "zfs"),
    CapabilityRule("test -f /proc/mdstat && grep -q md /proc/mdstat", "mdraid"),
    CapabilityRule(
        "command -v btrfs >/dev/null 2>&1 && btrfs filesystem show >/dev/null 2>&1", "btrfs"
    ),
    CapabilityRule("command -v lvs >/dev/null 2>&1 && lvs >/dev/null 2>&1", "lvm"),
)


async def _first_match(
    executor: Executor,
    rules: tuple[CapabilityRule, ...],
    default: str,
) -> str:
    for rule in rules:
        try:
            output = await executor(marker_command(rule.test))
        except EXECUTION_ERRORS as exc:
            logger.debug("能力探测失败 [{}]: {}", rule.test, exc)
            continue
        if marker_present(output):
            return rule.value
    return default


async def probe_capabilities(executor: Executor) -> PlatformCapability:
    capabilities = PlatformCapability(
        container_runtime=await _first_match(executor, CONTAINER_RUNTIME_RULES, "none"),  # type: ignore[arg-type]
        virtualization=await _first_match(executor, VIRTUALIZATION_RULES, "none"),  # type: ignore[arg-type]
        init_system=await _first_match(executor, INIT_SYSTEM_RULES, "sysv"),  # type: ignore[arg-type]
        storage=await _first_match(executor, STORAGE_RULES, "ext4"),  # type: ignore[arg-type]
    )
    logger.info("主机能力: {}", capabilities.to_dict())
    return capabilities
