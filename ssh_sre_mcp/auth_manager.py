from __future__ import annotations

from dataclasses import dataclass

import keyring
from keyring.errors import KeyringError
from loguru import logger

from ssh_sre_mcp.exceptions import CredentialError
from ssh_sre_mcp.settings import SSHSRESettings


@dataclass(frozen=True)
class SSHCredentials:
    host: str
    username: str
    password: str | None
    private_key_path: str | None

    @property
    def auth_mode(self) -> str:
        if self.private_key_path and self.password:
            return "mixed"
        if self.private_key_path:
            return "key"
        if self.password:
            return "password"
        return "none"

    def __repr__(self) -> str:
        return (
            f"SSHCredentials(host={self.host!r}, username={self.username!r}, "
            f"auth_mode={self.auth_mode!r})"
        )


class AuthManager:
    """解析远程主机的凭据引用。

    配置中显式给出的密码/私钥优先，否则从系统 keyring 读取。
    keyring 中的键格式为 ``host|username|password`` 与
    ``host|username|private_key_path``（小写）。
    """

    def __init__(self, *, service_name: str = "ssh-sre-mcp") -> None:
        self._service_name = service_name

    def get_credentials(self, *, host: str, username: str) -> SSHCredentials:
        password = keyring.get_password(self._service_name, self._key(host, username, "password"))
        private_key_path = keyring.get_password(
            self._service_name,
            self._key(host, username, "private_key_path"),
        )
        return SSHCredentials(
            host=host,
            username=username,
            password=password,
            private_key_path=private_key_path,
        )

    def resolve(self, settings: SSHSRESettings) -> SSHCredentials:
        if not settings.host:
            raise CredentialError("未配置远程主机(SSH_SRE_HOST)")
        if not settings.username:
            raise CredentialError("未配置SSH用户名(SSH_SRE_USERNAME)", host=settings.host)

        if settings.password or settings.private_key_path:
            return SSHCredentials(
                host=settings.host,
                username=settings.username,
                password=settings.password,
                private_key_path=settings.private_key_path,
            )

        try:
            creds = self.get_credentials(host=settings.host, username=settings.username)
        except KeyringError as exc:
            raise CredentialError(
                f"读取keyring失败: {exc}",
                host=settings.host,
                username=settings.username,
            ) from exc

        if creds.auth_mode == "none":
            raise CredentialError(
                "未提供凭据，且keyring中未找到",
                host=settings.host,
                username=settings.username,
            )
        logger.debug("已从keyring加载凭据: {}@{} ({})", creds.username, creds.host, creds.auth_mode)
        return creds

    @staticmethod
    def _key(host: str, username: str, field: str) -> str:
        return f"{host}|{username}|{field}".lower()
