import sys
import traceback

from ssh_sre_mcp.__main__ import main

if __name__ == "__main__":
    # 直接运行脚本时的入口（Claude Desktop 配置中常用 `python main.py`）
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n服务器已停止", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"启动失败: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)
