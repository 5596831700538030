from loguru import logger

from ssh_sre_mcp.config_manager import ConfigManager
from ssh_sre_mcp.logger import setup_logger
from ssh_sre_mcp.mcp_server import run_stdio_server


def main() -> int:
    config_manager = ConfigManager.load()
    log_dir = setup_logger(config_manager.settings)
    logger.info(
        "配置来源: {}，日志目录: {}",
        ", ".join(config_manager.sources) or "默认值",
        log_dir,
    )
    run_stdio_server(config_manager.settings)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
