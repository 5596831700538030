"""SSH SRE MCP 自定义异常模块

定义项目中使用的所有自定义异常类，提供结构化的错误处理。
异常层次结构：
    SSHMCPError (基类)
    ├── SSHConnectionError        - SSH会话建立或维持失败（同时是内置 ConnectionError）
    ├── CommandTimeoutError       - 命令执行超时（同时是内置 TimeoutError）
    ├── CommandError              - 远程命令以非零退出码失败且有stderr
    ├── DetectionError            - 兜底平台缺失，无法完成平台识别
    ├── PlatformRegistrationError - 平台注册配置错误
    └── CredentialError           - 凭据相关错误
"""
from __future__ import annotations


class SSHMCPError(Exception):
    """SSH MCP 基础异常类。

    所有自定义异常的基类，提供统一的错误消息格式。

    Attributes:
        message: 用户友好的错误描述信息
        details: 可选的附加错误详情字典
    """

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        """初始化基础异常。

        Args:
            message: 用户友好的错误描述信息
            details: 可选的附加错误详情
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_error_dict(self) -> dict[str, object]:
        """将异常转换为结构化的错误字典。

        Returns:
            包含error_type、message和details的字典
        """
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class SSHConnectionError(SSHMCPError, ConnectionError):
    """SSH连接错误。

    当SSH会话建立失败、传输层断开或连接管理器关闭时抛出。
    连接管理器会在抛出前自动重连一次。

    Attributes:
        host: 目标主机地址
        port: 目标SSH端口
    """

    def __init__(
        self,
        message: str,
        *,
        host: str = "",
        port: int = 22,
        details: dict[str, object] | None = None,
    ) -> None:
        """初始化SSH连接错误。

        Args:
            message: 错误描述信息
            host: 目标主机地址
            port: 目标SSH端口
            details: 附加错误详情
        """
        merged_details = {"host": host, "port": port, **(details or {})}
        super().__init__(message, details=merged_details)
        self.host = host
        self.port = port


class CommandTimeoutError(SSHMCPError, TimeoutError):
    """命令执行超时错误。

    超时后会话健康状况不确定，下一次调用会触发重连。

    Attributes:
        command: 超时的命令预览
        timeout_seconds: 超时时间（秒）
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        timeout_seconds: float = 0.0,
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {
            "command": command,
            "timeout_seconds": timeout_seconds,
            **(details or {}),
        }
        super().__init__(message, details=merged_details)
        self.command = command
        self.timeout_seconds = timeout_seconds


class CommandError(SSHMCPError):
    """命令执行错误。

    当远程命令以非零退出码结束且stderr非空时抛出。
    不会触发重连。

    Attributes:
        command: 截断后的命令预览
        exit_status: 命令退出状态码
        stderr: 标准错误输出
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        exit_status: int = -1,
        stderr: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        """初始化命令执行错误。

        Args:
            message: 错误描述信息
            command: 截断后的命令预览
            exit_status: 命令退出状态码
            stderr: 标准错误输出
            details: 附加错误详情
        """
        merged_details = {
            "command": command,
            "exit_status": exit_status,
            "stderr": stderr,
            **(details or {}),
        }
        super().__init__(message, details=merged_details)
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class DetectionError(SSHMCPError):
    """平台识别错误。

    仅在兜底平台未注册时抛出，属于启动期配置缺陷。

    Attributes:
        fallback_id: 期望的兜底平台ID
    """

    def __init__(
        self,
        message: str,
        *,
        fallback_id: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"fallback_id": fallback_id, **(details or {})}
        super().__init__(message, details=merged_details)
        self.fallback_id = fallback_id


class PlatformRegistrationError(SSHMCPError):
    """平台注册错误。

    平台ID重复或在识别完成后继续注册时抛出。

    Attributes:
        platform_id: 出错的平台ID
    """

    def __init__(
        self,
        message: str,
        *,
        platform_id: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"platform_id": platform_id, **(details or {})}
        super().__init__(message, details=merged_details)
        self.platform_id = platform_id


class CredentialError(SSHMCPError):
    """凭据错误。

    当凭据缺失、无效或keyring操作失败时抛出。

    Attributes:
        host: 关联的主机地址
        username: 关联的用户名
    """

    def __init__(
        self,
        message: str,
        *,
        host: str = "",
        username: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        """初始化凭据错误。

        Args:
            message: 错误描述信息
            host: 关联的主机地址
            username: 关联的用户名
            details: 附加错误详情
        """
        merged_details = {"host": host, "username": username, **(details or {})}
        super().__init__(message, details=merged_details)
        self.host = host
        self.username = username
