# 参考文档: doc/server_structure.md 中间件部分
# 请求日志中间件

import time
import uuid
import logging
from fastapi import FastAPI, Request
from typing import Dict, Any

logger = logging.getLogger(__name__)


def setup_logging_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    设置请求日志中间件

    只记录方法、路径和耗时，不记录请求体和查询参数（含登录 code）

    Args:
        app: FastAPI应用实例
        config: 配置字典
    """
    slow_request_seconds = config.get('logging', {}).get('slow_request_seconds', 1.0)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        logger.info(
            f"[{request_id}] {request.method} {request.url.path} - "
            f"Client: {request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(f"[{request_id}] ERROR - {type(e).__name__} - Time: {process_time:.3f}s")
            raise

        process_time = time.perf_counter() - start_time
        log = logger.warning if process_time > slow_request_seconds else logger.info
        log(f"[{request_id}] {response.status_code} - Time: {process_time:.3f}s")

        response.headers["X-Request-ID"] = request_id
        return response
