"""SSH SRE MCP 配置设置模块

使用 Pydantic Settings 管理配置，支持以下配置方式（优先级从高到低）：
1. 环境变量（前缀：SSH_SRE_）
2. .env 文件
3. JSON 配置文件
4. 默认值

示例环境变量：
    SSH_SRE_HOST=192.168.1.10
    SSH_SRE_USERNAME=root
    SSH_SRE_PRIVATE_KEY_PATH=~/.ssh/id_ed25519
    SSH_SRE_COMMAND_TIMEOUT_SECONDS=30
"""
from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SSHSRESettings(BaseSettings):
    """SSH SRE MCP 服务器配置类。

    支持通过环境变量、.env文件或默认值进行配置。
    环境变量前缀为 SSH_SRE_。
    """

    model_config = SettingsConfigDict(env_prefix="SSH_SRE_", extra="ignore")

    # 配置文件路径
    config_file: Path = Field(default=Path("ssh_sre_config.json"))

    # 远程主机
    host: str = Field(default="", description="远程主机地址")
    port: int = Field(default=22, ge=1, le=65535, description="SSH端口")
    username: str = Field(default="", description="SSH用户名")
    password: str | None = Field(default=None, description="SSH密码")
    private_key_path: str | None = Field(default=None, description="SSH私钥路径")
    known_hosts_path: Path | None = Field(
        default=None, description="known_hosts文件路径，留空则不校验主机密钥"
    )

    # 日志配置
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: Path = Field(default=Path("logs"), description="日志目录")
    log_rotation: str = Field(default="10 MB", description="日志轮转大小")
    log_retention: str = Field(default="30 days", description="日志保留时间")

    # 连接配置
    connect_timeout_seconds: float = Field(
        default=10.0, gt=0, description="SSH连接超时时间(秒)"
    )
    keepalive_interval_seconds: int = Field(
        default=30, ge=0, description="SSH keepalive间隔(秒)，0表示关闭"
    )
    command_timeout_seconds: float = Field(
        default=15.0, gt=0, description="命令执行超时时间(秒)"
    )

    # 熔断配置
    max_consecutive_failures: int = Field(
        default=3, ge=0, description="连续失败多少次后熔断，0表示关闭熔断"
    )
    circuit_reset_seconds: float = Field(
        default=60.0, ge=0, description="熔断后多久允许试探请求(秒)"
    )

    # 执行器与平台
    command_preview_length: int = Field(
        default=100, ge=10, description="错误信息中命令预览的最大长度"
    )
    fallback_platform: str = Field(default="linux", description="兜底平台ID")
