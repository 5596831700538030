from __future__ import annotations

import json
import shlex
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from ssh_sre_mcp.executor import Executor
from ssh_sre_mcp.output_filters import OutputFilters, apply_filters, apply_filters_to_text
from ssh_sre_mcp.platforms.types import PlatformContext
from ssh_sre_mcp.tools.common import require, run_action

DockerAction = Literal[
    "list_containers",
    "inspect",
    "logs",
    "stats",
    "list_networks",
    "list_volumes",
]


def format_containers(output: str) -> str:
    """把 ``docker ps --format json`` 的逐行 JSON 转换为可读文本。"""
    blocks: list[str] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        c = json.loads(line)
        blocks.append(
            f"ID: {c.get('ID', '')}\n"
            f"Name: {c.get('Names', '')}\n"
            f"Image: {c.get('Image', '')}\n"
            f"Status: {c.get('Status', '')}\n"
            f"State: {c.get('State', '')}\n"
            f"Ports: {c.get('Ports') or 'none'}"
        )
    if not blocks:
        return "No containers."
    return "\n---\n".join(blocks)


def register_docker_tools(mcp: FastMCP, executor: Executor, context: PlatformContext) -> None:
    @mcp.tool()
    async def docker(
        *,
        action: DockerAction,
        container: str | None = None,
        all: bool = True,
        tail: int | None = None,
        since: str | None = None,
        filters: OutputFilters | None = None,
    ) -> dict[str, Any]:
        """Docker 容器、网络与卷的只读检查。

        Args:
            action: list_containers / inspect / logs / stats / list_networks / list_volumes
            container: 容器名或ID（inspect、logs 必填，stats 可选）
            all: list_containers 是否包含已停止的容器
            tail: logs 返回的末尾行数（docker logs --tail）
            since: logs 起始时间（docker logs --since），如 1h
            filters: 输出过滤选项

        Returns:
            dict: ok、action、output 或 error
        """

        async def call() -> str:
            if action == "list_containers":
                cmd = "docker ps -a --format json" if all else "docker ps --format json"
                formatted = format_containers(await executor(cmd))
                return apply_filters_to_text(formatted, filters)

            if action == "inspect":
                name = shlex.quote(require(container, "container"))
                raw = await executor(f"docker inspect {name}")
                formatted = json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
                return apply_filters_to_text(formatted, filters)

            if action == "logs":
                name = shlex.quote(require(container, "container"))
                cmd = f"docker logs {name}"
                if tail is not None:
                    cmd += f" --tail {int(tail)}"
                if since is not None:
                    cmd += f" --since {shlex.quote(since)}"
                # docker logs 会把容器的 stderr 也写到 stderr
                return await executor(apply_filters(f"{cmd} 2>&1", filters))

            if action == "stats":
                cmd = "docker stats --no-stream"
                if container:
                    cmd += f" {shlex.quote(container)}"
                return await executor(apply_filters(cmd, filters))

            if action == "list_networks":
                return await executor(apply_filters("docker network ls", filters))

            return await executor(apply_filters("docker volume ls", filters))

        return await run_action(action, call)
