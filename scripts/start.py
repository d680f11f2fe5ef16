#!/usr/bin/env python3
"""应用启动脚本

用于本地开发和生产环境启动FastAPI应用
支持不同的启动模式和配置
"""

import os
import sys
import argparse
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.config import get_settings
from app.main import configure_logging

settings = get_settings()


def start_dev(host: str, port: int):
    """启动开发服务器

    使用uvicorn启动开发服务器，启用热重载
    """
    import uvicorn

    print(f"🔧 启动开发服务器...")
    print(f"📝 API文档: http://{host}:{port}/docs")
    print(f"📤 上传接口: http://{host}:{port}/upload")

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=True,
        log_level=settings.log_level.lower(),
        access_log=True
    )


def start_prod(host: str, port: int):
    """启动生产服务器

    工作进程数由 WORKERS 环境变量控制
    """
    import uvicorn

    print(f"🚀 启动生产服务器...")
    print(f"🌍 服务地址: http://{host}:{port}")

    workers = int(os.getenv("WORKERS", "1"))

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        workers=workers,
        log_level=settings.log_level.lower(),
        access_log=True
    )


def main():
    """主函数

    解析命令行参数并启动相应的服务器
    """
    parser = argparse.ArgumentParser(description="LinkSnap 后端启动脚本")
    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="启动模式: dev(开发) 或 prod(生产)"
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"服务器主机地址 (默认: {settings.host})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"服务器端口 (默认: {settings.port})"
    )

    args = parser.parse_args()

    # 确保日志目录存在
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
    configure_logging(settings)

    if args.mode == "dev":
        start_dev(args.host, args.port)
    else:
        start_prod(args.host, args.port)


if __name__ == "__main__":
    main()
