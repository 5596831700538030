from __future__ import annotations

import shlex
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.output_filters import OutputFilters, apply_filters
from ssh_sre_mcp.platforms.types import PlatformContext
from ssh_sre_mcp.tools.common import require, run_action

SystemAction = Literal["system_info", "disk_usage", "list_files", "read_file", "find_files"]

# find_files 最多返回的文件数
MAX_FOUND_FILES = 1000


def register_system_tools(mcp: FastMCP, executor: Executor, context: PlatformContext) -> None:
    @mcp.tool()
    async def system(
        *,
        action: SystemAction,
        path: str | None = None,
        pattern: str | None = None,
        long: bool = False,
        max_lines: int = 1000,
        filters: OutputFilters | None = None,
    ) -> dict[str, Any]:
        """系统操作。

        Args:
            action: system_info(内核/运行时间/内存) / disk_usage / list_files / read_file / find_files
            path: 目标路径（list_files、read_file、find_files 必填，disk_usage 默认 /）
            pattern: 文件名模式（find_files 必填），如 *.log
            long: list_files 是否使用长格式
            max_lines: read_file 最多读取的行数
            filters: 输出过滤选项

        Returns:
            dict: ok、action、output 或 error
        """

        async def call() -> str:
            if action == "system_info":
                cmd = "uname -a && echo '---' && uptime && echo '---' && free -h"
                return await executor(apply_filters(cmd, filters))

            if action == "disk_usage":
                target = shlex.quote(path or "/")
                return await executor(apply_filters(f"df -h {target}", filters))

            if action == "list_files":
                target = shlex.quote(require(path, "path"))
                cmd = f"ls -lah {target}" if long else f"ls {target}"
                return await executor(apply_filters(cmd, filters))

            if action == "read_file":
                target = shlex.quote(require(path, "path"))
                cmd = f"head -n {int(max_lines)} {target}" if max_lines > 0 else f"cat {target}"
                output = await executor(apply_filters(cmd, filters))
                limited = max_lines > 0 and (filters is None or filters.is_empty())
                if limited and len(output.splitlines()) >= max_lines:
                    output += f"\n\n[仅显示前{max_lines}行]"
                return output

            target = shlex.quote(require(path, "path"))
            name = shlex.quote(require(pattern, "pattern"))
            cmd = f"find {target} -name {name} -type f 2>/dev/null"
            output = await executor(apply_filters(cmd, filters))
            files = [line for line in output.strip().splitlines() if line]
            if not files:
                return f"在 {path} 下未找到匹配 {pattern} 的文件"
            if len(files) > MAX_FOUND_FILES:
                shown = "\n".join(files[:MAX_FOUND_FILES])
                return f"{shown}\n\n[共找到{len(files)}个，仅显示{MAX_FOUND_FILES}个]"
            return output

        return await run_action(action, call)
