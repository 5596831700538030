"""主机健康检查

comprehensive 汇总阵列、硬盘温度、磁盘空间、容器与资源五类检查；
common_issues 只列出需要处理的问题；threshold_alerts 按调用方给定的阈值告警。
单项检查的命令失败只影响该项，连接错误与超时仍然交给 run_action 处理。
"""
from __future__ import annotations

import re
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from loguru import logger
from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.exceptions import CommandError
from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.output_filters import OutputFilters, apply_filters_to_text
from ssh_sre_mcp.platforms.types import PlatformContext
from ssh_sre_mcp.tools.common import run_action
from ssh_sre_mcp.tools.unraid_tools import parse_mdcmd

HealthAction = Literal["comprehensive", "common_issues", "threshold_alerts"]

ARRAY_STATUS_COMMAND = "cat /proc/mdcmd 2>/dev/null || mdcmd status"
DEVICE_LIST_COMMAND = "ls -1 /dev/sd? /dev/nvme?n? 2>/dev/null || true"
DISK_USAGE_COMMAND = "df -h | grep -E '^/dev/(sd|nvme|md)'"
CONTAINER_STATE_COMMAND = "docker ps -a --format '{{.Names}},{{.State}},{{.Status}}'"
TOP_COMMAND = "top -b -n 1 | head -5"
MEMORY_COMMAND = "free | grep Mem:"

# comprehensive / common_issues 使用的固定阈值
TEMP_WARNING = 50
TEMP_CRITICAL = 60
DISK_WARNING = 90
DISK_CRITICAL = 95
CPU_WARNING = 80.0
CPU_CRITICAL = 90.0
MEM_WARNING = 90.0
MEM_CRITICAL = 95.0

_TEMP_VALUE = re.compile(r"(\d+)\s+(Celsius|C\b)", re.IGNORECASE)
_DF_LINE = re.compile(r"(\S+)\s+\S+\s+\S+\s+\S+\s+(\d+)%")
_TOP_CPU = re.compile(r"Cpu\(s\):\s*([\d.]+)\s*us", re.IGNORECASE)
_TOP_MEM = re.compile(r"Mem\s*:\s*([\d.]+)\s+total,\s*([\d.]+)\s+free", re.IGNORECASE)
_FREE_MEM = re.compile(r"Mem:\s*(\d+)\s+(\d+)")


class HealthStatus(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class HealthCheck:
    category: str
    status: HealthStatus
    details: str

    def render(self) -> str:
        return f"[{self.status.value}] {self.category}: {self.details}"


def drive_temp_command(device: str) -> str:
    path = shlex.quote(f"/dev/{device}")
    if device.startswith("nvme"):
        return f"smartctl -A -d nvme {path} 2>/dev/null | grep -i temperature | head -1"
    return f"smartctl -A -d ata {path} 2>/dev/null | grep -i temperature_celsius | head -1"


def parse_drive_temp(line: str) -> int | None:
    """从 smartctl 的温度行取出摄氏度。

    NVMe 输出形如 ``Temperature: 36 Celsius``；SATA 属性表的
    ``Temperature_Celsius`` 行取第 10 列的原始值。
    """
    match = _TEMP_VALUE.search(line)
    if match:
        return int(match.group(1))
    fields = line.split()
    if len(fields) >= 10 and "temperature_celsius" in line.lower() and fields[9].isdigit():
        return int(fields[9])
    return None


def parse_disk_usage(output: str) -> list[tuple[str, int]]:
    """解析 df -h 输出，返回 (设备, 使用百分比)。"""
    usage: list[tuple[str, int]] = []
    for line in output.splitlines():
        match = _DF_LINE.search(line)
        if match:
            usage.append((match.group(1), int(match.group(2))))
    return usage


def parse_container_states(output: str) -> list[tuple[str, str, str]]:
    containers: list[tuple[str, str, str]] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        name, _, rest = line.strip().partition(",")
        state, _, status = rest.partition(",")
        containers.append((name, state, status))
    return containers


def is_restarting(state: str, status: str) -> bool:
    return state == "restarting" or "Restarting" in status


def parse_cpu_percent(top_output: str) -> float | None:
    match = _TOP_CPU.search(top_output)
    return float(match.group(1)) if match else None


def parse_top_memory_percent(top_output: str) -> float | None:
    match = _TOP_MEM.search(top_output)
    if not match:
        return None
    total, free = float(match.group(1)), float(match.group(2))
    return (total - free) / total * 100 if total else None


def parse_free_memory_percent(free_output: str) -> float | None:
    match = _FREE_MEM.search(free_output)
    if not match:
        return None
    total, used = int(match.group(1)), int(match.group(2))
    return used / total * 100 if total else None


async def drive_temps(executor: Executor) -> list[tuple[str, int]]:
    """读取所有 SATA/NVMe 硬盘的温度，读不到的盘跳过。"""
    listing = await executor(DEVICE_LIST_COMMAND)
    temps: list[tuple[str, int]] = []
    for line in listing.splitlines():
        device = line.strip().removeprefix("/dev/")
        if not device:
            continue
        try:
            output = await executor(drive_temp_command(device))
        except CommandError as exc:
            logger.debug("读取 {} 温度失败: {}", device, exc.message)
            continue
        temp = parse_drive_temp(output)
        if temp is not None:
            temps.append((device, temp))
    return temps


async def _guarded(category: str, check: Callable[[], Awaitable[HealthCheck]]) -> HealthCheck:
    try:
        return await check()
    except CommandError as exc:
        logger.warning("健康检查 {} 失败: {}", category, exc.message)
        return HealthCheck(category, HealthStatus.WARNING, "Unable to check")


async def check_array(executor: Executor) -> HealthCheck:
    values = parse_mdcmd(await executor(ARRAY_STATUS_COMMAND))
    try:
        sync_errors = int(values.get("sbSyncErrs", "0"))
    except ValueError:
        sync_errors = 0
    if values.get("mdState") != "STARTED":
        return HealthCheck("Array", HealthStatus.CRITICAL, "Array not started")
    if sync_errors > 0:
        return HealthCheck("Array", HealthStatus.WARNING, f"Parity errors: {sync_errors}")
    return HealthCheck("Array", HealthStatus.OK, "Array running normally")


async def check_temps(executor: Executor) -> HealthCheck:
    max_temp = max((temp for _, temp in await drive_temps(executor)), default=0)
    if max_temp > TEMP_CRITICAL:
        return HealthCheck("Temps", HealthStatus.CRITICAL, f"Critical: {max_temp}°C")
    if max_temp > TEMP_WARNING:
        return HealthCheck("Temps", HealthStatus.WARNING, f"High: {max_temp}°C")
    return HealthCheck("Temps", HealthStatus.OK, f"Max temp: {max_temp}°C")


async def check_disk(executor: Executor) -> HealthCheck:
    usage = parse_disk_usage(await executor(DISK_USAGE_COMMAND))
    critical = [f"{device}: {pct}%" for device, pct in usage if pct >= DISK_CRITICAL]
    warning = [
        f"{device}: {pct}%" for device, pct in usage if DISK_WARNING <= pct < DISK_CRITICAL
    ]
    if critical:
        return HealthCheck("Disk", HealthStatus.CRITICAL, f"Critical: {', '.join(critical)}")
    if warning:
        return HealthCheck("Disk", HealthStatus.WARNING, f"Low: {', '.join(warning)}")
    return HealthCheck("Disk", HealthStatus.OK, "Disk space OK")


async def check_containers(executor: Executor) -> HealthCheck:
    containers = parse_container_states(await executor(CONTAINER_STATE_COMMAND))
    restarting = [name for name, state, status in containers if is_restarting(state, status)]
    exited = [name for name, state, _ in containers if state == "exited"]
    if restarting:
        return HealthCheck("Containers", HealthStatus.CRITICAL, f"Restarting: {', '.join(restarting)}")
    if exited:
        return HealthCheck("Containers", HealthStatus.WARNING, f"Stopped: {', '.join(exited)}")
    return HealthCheck("Containers", HealthStatus.OK, f"{len(containers)} containers OK")


async def check_resources(executor: Executor) -> HealthCheck:
    top = await executor(TOP_COMMAND)
    cpu = parse_cpu_percent(top) or 0.0
    mem = parse_top_memory_percent(top) or 0.0
    details = f"CPU: {cpu:.1f}%, Mem: {mem:.1f}%"
    if cpu > CPU_CRITICAL or mem > MEM_CRITICAL:
        return HealthCheck("Resources", HealthStatus.CRITICAL, f"Critical! {details}")
    if cpu > CPU_WARNING or mem > MEM_WARNING:
        return HealthCheck("Resources", HealthStatus.WARNING, f"High: {details}")
    return HealthCheck("Resources", HealthStatus.OK, details)


def overall_status(checks: list[HealthCheck]) -> HealthStatus:
    statuses = {check.status for check in checks}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.WARNING in statuses:
        return HealthStatus.WARNING
    return HealthStatus.OK


def _threshold(value: float, name: str) -> float:
    if not 0 <= value <= 100:
        raise ValueError(f"{name}必须在0到100之间")
    return value


def register_health_tools(mcp: FastMCP, executor: Executor, context: PlatformContext) -> None:
    # /proc/mdcmd 只存在于 Unraid；容器检查需要 docker
    check_array_enabled = context.platform_id == "unraid"
    caps = context.capabilities
    check_containers_enabled = caps is None or caps.container_runtime == "docker"

    async def comprehensive() -> str:
        checks: list[HealthCheck] = []
        if check_array_enabled:
            checks.append(await _guarded("Array", lambda: check_array(executor)))
        checks.append(await _guarded("Temps", lambda: check_temps(executor)))
        checks.append(await _guarded("Disk", lambda: check_disk(executor)))
        if check_containers_enabled:
            checks.append(await _guarded("Containers", lambda: check_containers(executor)))
        checks.append(await _guarded("Resources", lambda: check_resources(executor)))

        summary = "\n".join(check.render() for check in checks)
        return f"=== Health Check ===\n\nOverall: {overall_status(checks).value}\n\n{summary}"

    async def common_issues() -> str:
        issues: list[str] = []
        try:
            for device, temp in await drive_temps(executor):
                if temp > TEMP_CRITICAL:
                    issues.append(f"[CRITICAL] {device}: {temp}°C")
                elif temp > TEMP_WARNING:
                    issues.append(f"[HIGH] {device}: {temp}°C")
        except CommandError as exc:
            logger.warning("读取硬盘列表失败: {}", exc.message)

        try:
            for device, pct in parse_disk_usage(await executor(DISK_USAGE_COMMAND)):
                if pct >= DISK_CRITICAL:
                    issues.append(f"[CRITICAL] Disk {device}: {pct}%")
                elif pct >= DISK_WARNING:
                    issues.append(f"[HIGH] Disk {device}: {pct}%")
        except CommandError as exc:
            logger.warning("读取磁盘用量失败: {}", exc.message)

        if check_containers_enabled:
            try:
                output = await executor(CONTAINER_STATE_COMMAND)
                for name, state, status in parse_container_states(output):
                    if is_restarting(state, status):
                        issues.append(f"[CRITICAL] Container {name} restarting")
            except CommandError as exc:
                logger.warning("读取容器状态失败: {}", exc.message)

        if not issues:
            return "=== Issues Detection ===\n\nNo issues detected."
        return f"=== Issues Detection ===\n\n{len(issues)} issue(s):\n\n" + "\n".join(issues)

    async def threshold_alerts(cpu: float, mem: float, disk: float, temp: float) -> str:
        alerts: list[str] = []
        try:
            cpu_used = parse_cpu_percent(await executor(TOP_COMMAND))
            if cpu_used is not None and cpu_used > cpu:
                alerts.append(f"CPU {cpu_used:.1f}% > {cpu:g}%")
        except CommandError as exc:
            logger.warning("读取CPU使用率失败: {}", exc.message)

        try:
            mem_used = parse_free_memory_percent(await executor(MEMORY_COMMAND))
            if mem_used is not None and mem_used > mem:
                alerts.append(f"Memory {mem_used:.1f}% > {mem:g}%")
        except CommandError as exc:
            logger.warning("读取内存使用率失败: {}", exc.message)

        try:
            for device, pct in parse_disk_usage(await executor(DISK_USAGE_COMMAND)):
                if pct > disk:
                    alerts.append(f"Disk {device} {pct}% > {disk:g}%")
        except CommandError as exc:
            logger.warning("读取磁盘用量失败: {}", exc.message)

        try:
            for device, value in await drive_temps(executor):
                if value > temp:
                    alerts.append(f"Drive {device} {value}°C > {temp:g}°C")
        except CommandError as exc:
            logger.warning("读取硬盘列表失败: {}", exc.message)

        header = (
            "=== Threshold Alerts ===\n\n"
            f"Thresholds: CPU {cpu:g}%, Mem {mem:g}%, Disk {disk:g}%, Temp {temp:g}°C\n\n"
        )
        if not alerts:
            return header + "No thresholds exceeded."
        return header + f"{len(alerts)} Alert(s):\n\n" + "\n".join(alerts)

    @mcp.tool()
    async def health(
        *,
        action: HealthAction,
        cpu_threshold: float = 80,
        mem_threshold: float = 90,
        disk_threshold: float = 90,
        temp_threshold: float = 50,
        filters: OutputFilters | None = None,
    ) -> dict[str, Any]:
        """主机健康检查。

        Args:
            action: comprehensive(整体状态) / common_issues(待处理问题) / threshold_alerts(阈值告警)
            cpu_threshold: threshold_alerts 的 CPU 使用率阈值（%）
            mem_threshold: threshold_alerts 的内存使用率阈值（%）
            disk_threshold: threshold_alerts 的磁盘使用率阈值（%）
            temp_threshold: threshold_alerts 的硬盘温度阈值（°C）
            filters: 输出过滤选项

        Returns:
            dict: ok、action、output 或 error
        """

        async def call() -> str:
            if action == "comprehensive":
                report = await comprehensive()
            elif action == "common_issues":
                report = await common_issues()
            else:
                report = await threshold_alerts(
                    _threshold(cpu_threshold, "cpu_threshold"),
                    _threshold(mem_threshold, "mem_threshold"),
                    _threshold(disk_threshold, "disk_threshold"),
                    _threshold(temp_threshold, "temp_threshold"),
                )
            return apply_filters_to_text(report, filters)

        return await run_action(action, call)
