from __future__ import annotations

import shlex
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.output_filters import OutputFilters, apply_filters_to_text
from ssh_sre_mcp.platforms.types import PlatformContext
from ssh_sre_mcp.tools.common import require, run_action

LogAction = Literal["grep_syslog", "journal_errors", "container_logs"]

_ERROR_PATTERN = "(error|fail|exception|critical)"


def register_log_tools(mcp: FastMCP, executor: Executor, context: PlatformContext) -> None:
    syslog_path = f"{context.paths.log_dir.rstrip('/')}/syslog"

    @mcp.tool()
    async def log(
        *,
        action: LogAction,
        pattern: str | None = None,
        case_sensitive: bool = False,
        hours: int = 24,
        container: str | None = None,
        lines: int = 100,
        filters: OutputFilters | None = None,
    ) -> dict[str, Any]:
        """日志检索。

        Args:
            action: grep_syslog(在syslog中搜索) / journal_errors(汇总错误) / container_logs
            pattern: grep_syslog 的搜索模式
            case_sensitive: 是否区分大小写
            hours: journal_errors 统计的时间范围（小时）
            container: container_logs 的容器名
            lines: 返回的最大行数
            filters: 输出过滤选项

        Returns:
            dict: ok、action、output 或 error
        """

        async def call() -> str:
            flags = "" if case_sensitive else "-i "
            if action == "grep_syslog":
                quoted = shlex.quote(require(pattern, "pattern"))
                cmd = (
                    f"grep {flags}-- {quoted} {shlex.quote(syslog_path)} 2>/dev/null "
                    f"| tail -n {int(lines)} || true"
                )
                output = await executor(cmd)
                return apply_filters_to_text(f'搜索 "{pattern}":\n\n{output}', filters)

            if action == "journal_errors":
                since = shlex.quote(f"{int(hours)} hours ago")
                cmd = (
                    f"(journalctl --since {since} --no-pager 2>/dev/null "
                    f"|| tail -n 5000 {shlex.quote(syslog_path)} 2>/dev/null) "
                    f"| grep -iE {shlex.quote(_ERROR_PATTERN)} "
                    f"| sort | uniq -c | sort -rn | head -n {int(lines)} || true"
                )
                output = await executor(cmd)
                return apply_filters_to_text(f"错误汇总 ({hours}h):\n\n{output}", filters)

            name = shlex.quote(require(container, "container"))
            output = await executor(f"docker logs --tail {int(lines)} {name} 2>&1")
            return apply_filters_to_text(output, filters)

        return await run_action(action, call)
