from __future__ import annotations

from ssh_sre_mcp.platforms.types import DetectionProbe, Platform, PlatformPaths, output_contains

# 通用 Linux：兜底平台，没有额外的专属工具，核心工具总会注册
LINUX_PLATFORM = Platform(
    id="linux",
    display_name="Generic Linux",
    probes=(
        DetectionProbe(
            command="uname -s 2>/dev/null || echo unknown",
            matcher=output_contains("linux"),
            description="uname -s",
        ),
    ),
    priority=0,
    paths=PlatformPaths(log_dir="/var/log", config_dir="/etc", data_dir="/home"),
)
