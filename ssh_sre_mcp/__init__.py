"""
SSH SRE MCP 远程运维工具

基于 MCP 协议、通过单个受管SSH会话对远程主机（Unraid / 通用 Linux）进行运维，
支持存储阵列、容器、虚拟机与日志检查。
"""

__version__ = "0.1.0"

__all__ = [
    "auth_manager",
    "config_manager",
    "connection_manager",
    "exceptions",
    "executor",
    "logger",
    "mcp_server",
    "output_filters",
    "platforms",
    "settings",
    "tools",
    "transport",
]
