#!/usr/bin/env python3
"""平台部署启动脚本

用于在Railway/Render等平台上启动FastAPI应用
"""

import os
import sys
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

def main():
    """启动FastAPI应用

    从环境变量获取端口号，默认使用3001
    """
    import uvicorn

    from app.core.config import get_settings
    from app.main import configure_logging

    configure_logging(get_settings())

    # 获取端口号，平台会设置PORT环境变量
    port = int(os.getenv("PORT", 3001))

    # 启动应用
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=port,
        # 生产环境不使用reload
        reload=False,
        workers=1,
        log_level="info",
        access_log=True
    )

if __name__ == "__main__":
    main()
