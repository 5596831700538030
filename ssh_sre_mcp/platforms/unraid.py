from __future__ import annotations

from ssh_sre_mcp.platforms.types import (
    DetectionProbe,
    Platform,
    PlatformPaths,
    ToolModule,
    output_contains,
)
from ssh_sre_mcp.tools.unraid_tools import register_unraid_tools

UNRAID_PLATFORM = Platform(
    id="unraid",
    display_name="Unraid",
    probes=(
        DetectionProbe.marker("test -f /boot/config/ident.cfg", "ident.cfg"),
        DetectionProbe.marker("test -f /proc/mdcmd", "/proc/mdcmd"),
        DetectionProbe(
            command="cat /etc/unraid-version 2>/dev/null || true",
            matcher=output_contains("version="),
            description="/etc/unraid-version",
        ),
    ),
    priority=100,
    paths=PlatformPaths(
        log_dir="/var/log",
        config_dir="/boot/config",
        data_dir="/mnt/user",
        cache_dir="/mnt/cache",
        container_data_dir="/mnt/user/appdata",
    ),
    tool_modules=(
        ToolModule(name="unraid", register=register_unraid_tools, priority=100),
    ),
)
