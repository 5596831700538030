"""日志配置

stdout 是 stdio MCP 的传输通道，日志只能写入 stderr（终端下）和日志文件。
"""
from __future__ import annotations

import re
import sys
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from loguru import logger

from ssh_sre_mcp.settings import SSHSRESettings

LOG_FILE_NAME = "ssh-sre-mcp.log"
ERROR_LOG_FILE_NAME = "ssh-sre-mcp-error.log"

_SECRET_ASSIGNMENT = re.compile(r"(?i)\b(password|passwd|passphrase|token|secret)(\s*[:=]\s*)(\S+)")
_PRIVATE_KEY_BLOCK = re.compile(
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
    re.DOTALL,
)


def redact(text: str) -> str:
    """隐藏日志消息中的口令与私钥内容。"""
    text = _PRIVATE_KEY_BLOCK.sub("[PRIVATE KEY REDACTED]", text)
    return _SECRET_ASSIGNMENT.sub(r"\1\2***", text)


def _resolve_log_dir(configured: Path) -> Path:
    try:
        configured.mkdir(parents=True, exist_ok=True)
        return configured
    except OSError:
        # 只读目录（例如 Claude Desktop 的安装目录）下退回临时目录
        fallback = Path(gettempdir()) / "ssh-sre-mcp-logs"
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def setup_logger(settings: SSHSRESettings) -> Path:
    """配置 loguru 日志输出。

    Returns:
        实际使用的日志目录
    """
    log_dir = _resolve_log_dir(Path(settings.log_dir))

    def patcher(record: Any) -> None:
        record["message"] = redact(record["message"])

    logger.remove()
    logger.configure(patcher=patcher)

    quiet = {"backtrace": False, "diagnose": False, "enqueue": True}
    if getattr(sys.stderr, "isatty", lambda: False)():
        logger.add(sys.stderr, level=settings.log_level, colorize=True, **quiet)

    rotating = {
        "rotation": settings.log_rotation,
        "retention": settings.log_retention,
        "encoding": "utf-8",
        **quiet,
    }
    logger.add(str(log_dir / LOG_FILE_NAME), level=settings.log_level, **rotating)
    logger.add(str(log_dir / ERROR_LOG_FILE_NAME), level="ERROR", **rotating)
    return log_dir
