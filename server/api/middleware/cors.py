# 参考文档: doc/server_structure.md 中间件部分
# CORS中间件配置

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict, Any

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000"
]


def setup_cors_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    设置CORS中间件

    未配置 allowed_origins 时，仅调试模式允许本地前端

    Args:
        app: FastAPI应用实例
        config: 配置字典
    """
    cors_config = config.get('cors', {})
    debug = config.get('app', {}).get('debug', False)

    allowed_origins = cors_config.get('allowed_origins') or (DEV_ORIGINS if debug else [])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allowed_methods', ["GET", "POST", "PUT"]),
        allow_headers=cors_config.get('allowed_headers', ["Authorization", "Content-Type", "appid"]),
    )
