from __future__ import annotations

import shlex
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.exceptions import CommandError
from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.output_filters import OutputFilters, apply_filters, apply_filters_to_text
from ssh_sre_mcp.platforms.types import PlatformContext
from ssh_sre_mcp.tools.common import require, run_action

UnraidAction = Literal["array_status", "parity_status", "smart", "temps", "shares", "share_usage"]


def parse_mdcmd(text: str) -> dict[str, str]:
    """解析 /proc/mdcmd 的 ``key=value`` 行。"""
    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip()
    return values


def format_parity_status(values: dict[str, str]) -> str:
    lines = [f"State: {values.get('mdState') or 'Unknown'}"]
    resync = values.get("mdResync", "0")
    lines.append(f"Resync: {'Not running' if resync == '0' else 'In progress'}")
    if resync != "0":
        try:
            pos = int(values.get("mdResyncPos", "0"))
            size = int(values.get("mdResyncSize", "0"))
        except ValueError:
            pos = size = 0
        if size > 0:
            lines.append(f"Action: {values.get('mdResyncAction') or 'Parity Check'}")
            lines.append(f"Progress: {pos / size * 100:.2f}%")
    return "\n".join(lines)


def smart_command(device: str, *, attributes_only: bool = False) -> str:
    """按设备类型生成 smartctl 命令，SATA 盘失败时退回自动识别。"""
    flag = "-A" if attributes_only else "-a"
    path = shlex.quote(f"/dev/{device}")
    if device.startswith("nvme"):
        return f"smartctl {flag} -d nvme {path}"
    return f"smartctl {flag} -d ata {path} || smartctl {flag} {path}"


async def collect_temps(executor: Executor) -> str:
    sections = ["=== System Temps ===", ""]
    sections.append(await executor("sensors 2>/dev/null || echo 'sensors not available'"))

    devices = await executor("ls -1 /dev/sd? /dev/nvme?n? 2>/dev/null || true")
    names = [line.strip().removeprefix("/dev/") for line in devices.splitlines() if line.strip()]
    if names:
        sections += ["", "=== Drive Temps ===", ""]
    for name in names:
        try:
            temp = await executor(
                f"({smart_command(name, attributes_only=True)}) | grep -i temperature"
            )
        except CommandError:
            temp = "Unable to read"
        sections.append(f"{name}:\n{temp.strip()}\n")
    return "\n".join(sections)


def register_unraid_tools(mcp: FastMCP, executor: Executor, context: PlatformContext) -> None:
    shares_root = context.paths.data_dir.rstrip("/")

    @mcp.tool()
    async def unraid(
        *,
        action: UnraidAction,
        device: str | None = None,
        share: str | None = None,
        filters: OutputFilters | None = None,
    ) -> dict[str, Any]:
        """Unraid 阵列、磁盘与共享状态。

        Args:
            action: array_status / parity_status / smart / temps / shares / share_usage
            device: smart 的设备名，如 sdb、nvme0n1
            share: share_usage 指定的共享名，留空统计全部共享
            filters: 输出过滤选项

        Returns:
            dict: ok、action、output 或 error
        """

        async def call() -> str:
            if action == "array_status":
                try:
                    output = await executor(apply_filters("cat /proc/mdcmd", filters))
                except CommandError:
                    output = await executor(apply_filters("mdcmd status", filters))
                return f"Array Status:\n\n{output}"

            if action == "parity_status":
                values = parse_mdcmd(await executor("cat /proc/mdcmd"))
                return apply_filters_to_text(format_parity_status(values), filters)

            if action == "smart":
                name = require(device, "device")
                output = await executor(apply_filters(smart_command(name), filters))
                return f"SMART - {name}:\n\n{output}"

            if action == "temps":
                return apply_filters_to_text(await collect_temps(executor), filters)

            if action == "shares":
                return await executor(apply_filters(f"ls -la {shlex.quote(shares_root + '/')}", filters))

            if share:
                target = shlex.quote(f"{shares_root}/{share}")
                cmd = f"du -sh {target}"
            else:
                cmd = f"du -sh {shlex.quote(shares_root)}/*"
            return await executor(apply_filters(cmd, filters))

        return await run_action(action, call)
