from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from ssh_sre_mcp.settings import SSHSRESettings

ENV_PREFIX = "SSH_SRE_"
DEFAULT_CONFIG_FILE = "ssh_sre_config.json"

# 允许以 ~ 开头的路径字段
_PATH_FIELDS = ("private_key_path", "known_hosts_path", "log_dir")


class ConfigManager:
    """按 JSON 文件 < .env < 环境变量 的优先级合并配置。

    Attributes:
        settings: 合并并校验后的配置
        sources: 实际参与合并的配置来源，按优先级从低到高
    """

    def __init__(self, settings: SSHSRESettings, sources: list[str] | None = None) -> None:
        self.settings = settings
        self.sources = sources or []

    @classmethod
    def load(
        cls,
        *,
        config_file: Path | None = None,
        env_file: Path | None = None,
        env_prefix: str = ENV_PREFIX,
    ) -> ConfigManager:
        config_path = config_file or Path(
            os.getenv(f"{env_prefix}CONFIG_FILE", DEFAULT_CONFIG_FILE)
        )
        dotenv_path = env_file if env_file is not None else Path(".env")

        layers: list[tuple[str, dict[str, Any]]] = []
        if config_path.is_file():
            layers.append((str(config_path), cls._read_json(config_path)))
        if dotenv_path.is_file():
            layers.append((str(dotenv_path), cls._pick_prefixed(dotenv_values(dotenv_path), env_prefix)))
        layers.append(("environment", cls._pick_prefixed(os.environ, env_prefix)))

        merged: dict[str, Any] = {}
        sources: list[str] = []
        for name, values in layers:
            if values:
                merged.update(values)
                sources.append(name)
        merged["config_file"] = config_path

        settings = SSHSRESettings.model_validate(cls._expand_paths(merged))
        return cls(settings, sources)

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"配置文件必须是JSON对象: {path}")
        return raw

    @staticmethod
    def _pick_prefixed(mapping: Mapping[str, Any], env_prefix: str) -> dict[str, Any]:
        """从环境变量风格的映射中取出已知字段，忽略空值。"""
        picked: dict[str, Any] = {}
        for field_name in SSHSRESettings.model_fields:
            value = mapping.get(f"{env_prefix}{field_name.upper()}")
            if value not in (None, ""):
                picked[field_name] = value
        return picked

    @staticmethod
    def _expand_paths(values: dict[str, Any]) -> dict[str, Any]:
        for field_name in _PATH_FIELDS:
            value = values.get(field_name)
            if isinstance(value, str) and value.startswith("~"):
                values[field_name] = os.path.expanduser(value)
        return values
