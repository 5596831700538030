"""SSH会话传输层模块

封装与单个远程主机之间的认证通道，只负责：
- 建立连接（open）
- 关闭连接（close）
- 报告连接存活状态（is_alive）
- 在通道上执行一条命令并收集完整结果（run）

重连、串行化、超时与熔断由 ConnectionManager 负责。
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import asyncssh
from loguru import logger

from ssh_sre_mcp.auth_manager import SSHCredentials
from ssh_sre_mcp.exceptions import SSHConnectionError
from ssh_sre_mcp.settings import SSHSRESettings

# 关闭连接时等待对端确认的最长时间（秒）
_CLOSE_WAIT_SECONDS: float = 5.0

# 被视为传输层故障的底层异常
_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (asyncssh.Error, OSError, EOFError)


def _to_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value


def _to_int(value: int | None) -> int:
    return int(value or 0)


@dataclass(frozen=True)
class CommandResult:
    """一次命令执行的完整结果。

    Attributes:
        stdout: 标准输出
        stderr: 标准错误输出
        exit_code: 退出码
    """

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
        }


class SessionTransport(ABC):
    """远程会话传输层抽象。

    一个实例对应一个会话：ConnectionManager 每次(重)连接都会通过工厂
    创建新实例，关闭后不再复用。
    """

    endpoint: str = ""

    @abstractmethod
    async def open(self) -> None:
        """建立会话。

        Raises:
            SSHConnectionError: 连接失败或超时
        """

    @abstractmethod
    async def close(self) -> None:
        """关闭会话，重复调用或对已断开的会话调用都不应抛出异常。"""

    @abstractmethod
    def is_alive(self) -> bool:
        """会话是否仍然可用。"""

    @abstractmethod
    async def run(self, command: str) -> CommandResult:
        """执行一条命令直到结束。

        非零退出码不是异常，原样放入 CommandResult。

        Raises:
            SSHConnectionError: 传输层故障（连接断开、通道无法打开等）
        """


class AsyncSSHTransport(SessionTransport):
    """基于 asyncssh 的会话传输实现。"""

    def __init__(
        self,
        *,
        settings: SSHSRESettings,
        credentials: SSHCredentials,
    ) -> None:
        self._settings = settings
        self._credentials = credentials
        self._conn: asyncssh.SSHClientConnection | None = None
        self.endpoint = f"{credentials.username}@{settings.host}:{settings.port}"

    def _connect_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "host": self._settings.host,
            "port": self._settings.port,
            "username": self._credentials.username,
            "keepalive_interval": self._settings.keepalive_interval_seconds,
        }
        if self._credentials.private_key_path:
            options["client_keys"] = [self._credentials.private_key_path]
        if self._credentials.password:
            options["password"] = self._credentials.password
        if self._settings.known_hosts_path is not None:
            options["known_hosts"] = str(self._settings.known_hosts_path)
        else:
            options["known_hosts"] = None
        return options

    async def open(self) -> None:
        host = self._settings.host
        port = self._settings.port
        try:
            self._conn = await asyncio.wait_for(
                asyncssh.connect(**self._connect_options()),
                timeout=self._settings.connect_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise SSHConnectionError(
                f"SSH连接超时: {host}:{port}",
                host=host,
                port=port,
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise SSHConnectionError(
                f"SSH连接失败: {host}:{port} - {exc}",
                host=host,
                port=port,
            ) from exc
        logger.info("SSH连接已建立: {}", self.endpoint)

    async def close(self) -> None:
        conn = self._conn
        self._conn = None
        if conn is None:
            return
        try:
            conn.close()
            await asyncio.wait_for(conn.wait_closed(), timeout=_CLOSE_WAIT_SECONDS)
        except (asyncio.TimeoutError, *_TRANSPORT_ERRORS) as exc:
            logger.debug("关闭SSH连接时出错（忽略）: {} - {}", self.endpoint, exc)

    def is_alive(self) -> bool:
        conn = self._conn
        if conn is None:
            return False
        try:
            return not conn.is_closing()
        except _TRANSPORT_ERRORS:
            return False

    async def run(self, command: str) -> CommandResult:
        conn = self._conn
        if conn is None or not self.is_alive():
            raise SSHConnectionError(
                f"SSH会话不可用: {self.endpoint}",
                host=self._settings.host,
                port=self._settings.port,
            )
        try:
            # 非 UTF-8 输出按替换字符解码
            completed: asyncssh.SSHCompletedProcess = await conn.run(
                command, check=False, errors="replace"
            )
        except _TRANSPORT_ERRORS as exc:
            raise SSHConnectionError(
                f"SSH传输层错误: {exc}",
                host=self._settings.host,
                port=self._settings.port,
                details={"error": type(exc).__name__},
            ) from exc
        return CommandResult(
            stdout=_to_text(completed.stdout),
            stderr=_to_text(completed.stderr),
            exit_code=_to_int(completed.exit_status),
        )
