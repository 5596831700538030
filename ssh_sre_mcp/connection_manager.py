"""SSH连接管理模块

在单个 SessionTransport 之上提供：
- 显式状态机（DISCONNECTED / CONNECTING / CONNECTED / FAILED）
- 按需（重）连接：传输层故障后只自动重连一次并重试当前命令
- 显式请求队列 + 单一 worker 任务，保证命令严格按提交顺序串行执行
- 每条命令的默认超时
- 连续失败熔断（半开后放行一次试探请求）
- disconnect() 时唤醒所有排队/执行中的调用方
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from ssh_sre_mcp.exceptions import CommandTimeoutError, SSHConnectionError
from ssh_sre_mcp.settings import SSHSRESettings
from ssh_sre_mcp.transport import CommandResult, SessionTransport

TransportFactory = Callable[[], SessionTransport]

# 日志中命令预览的最大长度
_LOG_PREVIEW_LENGTH: int = 80


class ConnectionState(str, Enum):
    """会话连接状态。"""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass
class _Session:
    """当前打开的会话。

    Attributes:
        transport: 会话传输对象
        opened_at: 建立时的单调时间戳
        last_activity: 最近一次命令完成的单调时间戳
    """

    transport: SessionTransport
    opened_at: float
    last_activity: float


@dataclass
class _PendingCommand:
    """排队中的命令请求。

    Attributes:
        command: 要执行的命令
        future: 由 worker 写入结果或异常
    """

    command: str
    future: asyncio.Future[CommandResult]


def _preview(command: str) -> str:
    if len(command) <= _LOG_PREVIEW_LENGTH:
        return command
    return command[:_LOG_PREVIEW_LENGTH] + "..."


class ConnectionManager:
    """单主机SSH会话管理器。

    所有命令都经过同一个 asyncio.Queue，由唯一的 worker 任务依次取出执行，
    因此任意时刻会话上最多只有一条命令在运行，且执行顺序等于提交顺序。

    Attributes:
        _settings: 配置
        _transport_factory: 每次(重)连接时创建新的传输对象
    """

    def __init__(
        self,
        *,
        settings: SSHSRESettings,
        transport_factory: TransportFactory,
        time_provider: Callable[[], float] = time.monotonic,
    ) -> None:
        """初始化连接管理器。

        Args:
            settings: 配置
            transport_factory: 传输对象工厂
            time_provider: 时间提供函数，用于测试注入
        """
        self._settings = settings
        self._transport_factory = transport_factory
        self._time = time_provider

        self._state = ConnectionState.DISCONNECTED
        self._session: _Session | None = None
        self._connect_lock = asyncio.Lock()

        self._queue: asyncio.Queue[_PendingCommand] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._in_flight: _PendingCommand | None = None
        # disconnect() 进行中时拒绝新命令和新连接
        self._closing = 0

        # 熔断状态
        self._consecutive_failures = 0
        self._circuit_opened_at: float | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_activity(self) -> float | None:
        if self._session is None:
            return None
        return self._session.last_activity

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def circuit_open(self) -> bool:
        return self._circuit_opened_at is not None

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    def is_connected(self) -> bool:
        session = self._session
        return (
            self._state is ConnectionState.CONNECTED
            and session is not None
            and session.transport.is_alive()
        )

    async def connect(self) -> None:
        """建立会话；已连接时为空操作。

        Raises:
            SSHConnectionError: 连接失败或管理器正在关闭
        """
        self._reject_if_closing()
        async with self._connect_lock:
            self._reject_if_closing()
            if self.is_connected():
                return
            await self._open_session_unlocked()

    async def execute_command(self, command: str) -> CommandResult:
        """提交一条命令并等待其结果。

        命令进入FIFO队列，轮到时在会话上执行；会话未连接时自动连接。

        Args:
            command: 要执行的命令

        Returns:
            CommandResult: stdout、stderr、exit_code

        Raises:
            SSHConnectionError: 连接失败、重连后再次失败、熔断中或管理器已关闭
            CommandTimeoutError: 命令超时
        """
        if not command.strip():
            raise ValueError("command不能为空")

        self._reject_if_closing()
        self._ensure_worker_started()
        loop = asyncio.get_running_loop()
        pending = _PendingCommand(command=command, future=loop.create_future())
        self._queue.put_nowait(pending)
        return await pending.future

    async def disconnect(self) -> None:
        """关闭会话并唤醒所有等待者。

        可重复调用；对已关闭的会话不会抛出异常。
        关闭过程中提交的命令直接以 SSHConnectionError 失败，不会建立新会话。
        """
        self._closing += 1
        try:
            worker = self._worker
            self._worker = None
            if worker is not None and not worker.done():
                worker.cancel()
                try:
                    await worker
                except asyncio.CancelledError:
                    pass

            failed = self._fail_queued(SSHConnectionError("连接管理器已关闭，命令未执行"))
            if failed:
                logger.warning("断开连接时取消了 {} 条排队中的命令", failed)

            async with self._connect_lock:
                had_session = self._session is not None
                await self._discard_session()
                self._state = ConnectionState.DISCONNECTED
            if had_session:
                logger.info("已断开SSH连接")
        finally:
            self._closing -= 1

    def _reject_if_closing(self) -> None:
        if self._closing:
            raise SSHConnectionError(
                "连接管理器正在关闭，命令未执行",
                host=self._settings.host,
                port=self._settings.port,
            )

    def _ensure_worker_started(self) -> None:
        """确保 worker 任务已启动，首次提交命令时懒启动。"""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._worker_loop(), name="ssh-command-worker")

    async def _worker_loop(self) -> None:
        """依次取出队列中的命令执行，直到被 disconnect() 取消。"""
        while True:
            pending = await self._queue.get()
            if pending.future.done():
                # 调用方已取消等待
                continue

            self._in_flight = pending
            try:
                result = await self._execute_with_recovery(pending.command)
            except asyncio.CancelledError:
                self._resolve(pending, exc=SSHConnectionError("连接管理器已关闭，命令被中断"))
                raise
            except Exception as exc:
                self._resolve(pending, exc=exc)
            else:
                self._resolve(pending, result=result)
            finally:
                self._in_flight = None

    @staticmethod
    def _resolve(
        pending: _PendingCommand,
        *,
        result: CommandResult | None = None,
        exc: BaseException | None = None,
    ) -> None:
        if pending.future.done():
            return
        if exc is not None:
            pending.future.set_exception(exc)
        else:
            pending.future.set_result(result)  # type: ignore[arg-type]

    def _fail_queued(self, exc: SSHConnectionError) -> int:
        failed = 0
        while True:
            try:
                pending = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return failed
            if not pending.future.done():
                pending.future.set_exception(exc)
                failed += 1

    async def _execute_with_recovery(self, command: str) -> CommandResult:
        """执行命令并维护熔断计数。

        只有连接失败和超时计入连续失败；非零退出码不算。
        """
        self._check_circuit()
        try:
            result = await self._run_with_single_reconnect(command)
        except (SSHConnectionError, CommandTimeoutError):
            self._record_failure()
            raise
        self._record_success()
        return result

    async def _run_with_single_reconnect(self, command: str) -> CommandResult:
        # 上一条命令失败后留下的 FAILED 会话：这次连接本身就是唯一的一次重连
        recovering = self._state is ConnectionState.FAILED
        await self.connect()
        try:
            return await self._run_once(command)
        except SSHConnectionError as exc:
            if recovering:
                raise
            logger.warning("命令执行遇到传输层错误，重连一次后重试: {} ({})", _preview(command), exc)

        await self.connect()
        return await self._run_once(command)

    async def _run_once(self, command: str) -> CommandResult:
        session = self._session
        if session is None:
            raise SSHConnectionError(
                "SSH会话未建立",
                host=self._settings.host,
                port=self._settings.port,
            )

        timeout = float(self._settings.command_timeout_seconds)
        logger.debug("执行命令: {}", _preview(command))
        try:
            result = await asyncio.wait_for(session.transport.run(command), timeout=timeout)
        except asyncio.TimeoutError as exc:
            await self._mark_failed(f"命令超时({timeout}s)")
            raise CommandTimeoutError(
                f"命令执行超时({timeout}s): {_preview(command)}",
                command=_preview(command),
                timeout_seconds=timeout,
            ) from exc
        except SSHConnectionError as exc:
            await self._mark_failed(str(exc))
            raise

        session.last_activity = self._time()
        return result

    async def _open_session_unlocked(self) -> None:
        await self._discard_session()
        self._state = ConnectionState.CONNECTING
        try:
            transport = self._transport_factory()
            await transport.open()
        except BaseException:
            self._state = ConnectionState.FAILED
            raise

        now = self._time()
        self._session = _Session(transport=transport, opened_at=now, last_activity=now)
        self._state = ConnectionState.CONNECTED
        logger.info("会话已就绪: {}", transport.endpoint or self._settings.host)

    async def _mark_failed(self, reason: str) -> None:
        """将会话标记为失败并销毁，下一次执行时重新连接。"""
        logger.warning("会话被标记为不可用: {}", reason)
        await self._discard_session()
        self._state = ConnectionState.FAILED

    async def _discard_session(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            await session.transport.close()

    def _check_circuit(self) -> None:
        opened_at = self._circuit_opened_at
        if opened_at is None:
            return

        reset_seconds = float(self._settings.circuit_reset_seconds)
        elapsed = self._time() - opened_at
        if elapsed < reset_seconds:
            raise SSHConnectionError(
                f"熔断器已打开（连续失败{self._consecutive_failures}次），"
                f"请检查主机状态，{reset_seconds - elapsed:.0f}秒后重试",
                host=self._settings.host,
                port=self._settings.port,
                details={
                    "consecutive_failures": self._consecutive_failures,
                    "retry_after_seconds": round(reset_seconds - elapsed, 1),
                },
            )
        logger.info("熔断器半开，放行一次试探请求")

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        limit = int(self._settings.max_consecutive_failures)
        if limit and self._consecutive_failures >= limit:
            if self._circuit_opened_at is None:
                logger.error(
                    "连续失败{}次，熔断器打开，{}秒内命令将直接失败",
                    self._consecutive_failures,
                    self._settings.circuit_reset_seconds,
                )
            self._circuit_opened_at = self._time()

    def _record_success(self) -> None:
        if self._circuit_opened_at is not None:
            logger.info("试探请求成功，熔断器关闭")
        self._consecutive_failures = 0
        self._circuit_opened_at = None
