from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from ssh_sre_mcp.exceptions import SSHMCPError


def require(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{name}不能为空")
    return value


async def run_action(action: str, call: Callable[[], Awaitable[str]]) -> dict[str, Any]:
    """执行一个工具动作，把失败转换为结构化结果而不是抛出异常。

    Returns:
        成功: {"ok": True, "action": ..., "output": ...}
        失败: {"ok": False, "action": ..., "error": {"error_type", "message", "details"}}
    """
    try:
        output = await call()
    except SSHMCPError as exc:
        logger.warning("工具动作 {} 失败: {}", action, exc.message)
        return {"ok": False, "action": action, "error": exc.to_error_dict()}
    except ValueError as exc:
        return {
            "ok": False,
            "action": action,
            "error": {"error_type": type(exc).__name__, "message": str(exc), "details": {}},
        }
    return {"ok": True, "action": action, "output": output}
