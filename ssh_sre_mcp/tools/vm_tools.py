from __future__ import annotations

import shlex
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.output_filters import OutputFilters, apply_filters
from ssh_sre_mcp.platforms.types import PlatformContext
from ssh_sre_mcp.tools.common import require, run_action

VMAction = Literal["list", "info", "start", "stop"]


def register_vm_tools(mcp: FastMCP, executor: Executor, context: PlatformContext) -> None:
    @mcp.tool()
    async def vm(
        *,
        action: VMAction,
        name: str | None = None,
        filters: OutputFilters | None = None,
    ) -> dict[str, Any]:
        """libvirt 虚拟机管理（virsh）。

        Args:
            action: list / info / start / stop
            name: 虚拟机名称（info、start、stop 必填）
            filters: 输出过滤选项

        Returns:
            dict: ok、action、output 或 error
        """

        async def call() -> str:
            if context.capabilities is not None and context.capabilities.virtualization != "kvm":
                raise ValueError("目标主机未检测到 virsh/KVM")

            if action == "list":
                return await executor(apply_filters("virsh list --all", filters))

            domain = shlex.quote(require(name, "name"))
            if action == "info":
                return await executor(apply_filters(f"virsh dominfo {domain}", filters))
            if action == "start":
                return await executor(f"virsh start {domain}")
            return await executor(f"virsh shutdown {domain}")

        return await run_action(action, call)
