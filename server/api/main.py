# 参考文档: doc/server_structure.md 主应用部分
# FastAPI主应用

import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from utils.config import Config
from utils.exceptions import IdentityError, UpstreamFailureError
from utils.logger import setup_logging
from utils.response import create_error_response
from api.middleware import setup_middleware
from api.auth import auth_router
from db.account_store import AccountStore
from db.manager import DatabaseManager

config = Config()

setup_logging(config.config)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时初始化账户表"""
    logger.info("身份认证服务启动中...")
    logger.info(f"环境: {config.env}")

    with DatabaseManager(config.get_database_config()["path"]) as db:
        AccountStore(db).init_schema()

    yield

    logger.info("身份认证服务关闭中...")


app = FastAPI(
    title=config.config['app']['name'],
    version=config.config['app']['version'],
    description=config.config['app']['description'],
    debug=config.config['app']['debug'],
    lifespan=lifespan
)

setup_middleware(app, config.config)

app.include_router(auth_router)


@app.exception_handler(IdentityError)
async def identity_exception_handler(request: Request, exc: IdentityError):
    """业务异常处理：按错误分类返回状态码"""
    if isinstance(exc, UpstreamFailureError):
        logger.error(f"微信接口调用失败: {exc.message} ({exc.__cause__!r})")
    elif exc.status_code >= 500:
        logger.error(f"内部错误: {exc.message} ({exc.__cause__!r})")
    else:
        logger.warning(f"{request.method} {request.url.path} 失败 [{exc.error_type}]: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message, error_type=exc.error_type)
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP异常处理"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail))
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败"""
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=create_error_response(
            "Invalid request body.",
            error_type="invalid_input",
            data={"fields": fields}
        )
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """通用异常处理"""
    logger.error(f"未处理的异常: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=create_error_response("Internal server error.", error_type="internal_error")
    )


@app.get("/")
async def root():
    """根路径健康检查"""
    return {
        "message": "身份认证服务运行中",
        "version": config.config['app']['version'],
        "status": "healthy"
    }


@app.get("/health")
async def health_check():
    """健康检查端点：检查数据库可用"""
    try:
        with DatabaseManager(config.get_database_config()["path"]) as db:
            db.execute_single("SELECT 1")
    except (ConnectionError, sqlite3.Error) as e:
        logger.error(f"健康检查失败: {str(e)}")
        raise HTTPException(status_code=503, detail="Service unhealthy")

    return {
        "status": "healthy",
        "version": config.config['app']['version'],
        "environment": config.env
    }


if __name__ == "__main__":
    import uvicorn

    server_config = config.config['server']

    uvicorn.run(
        "api.main:app",
        host=server_config.get('host', '127.0.0.1'),
        port=server_config.get('port', 8000),
        reload=server_config.get('reload', False),
        workers=1 if server_config.get('reload', False) else server_config.get('workers', 1),
        log_level="debug" if config.config['app']['debug'] else "info"
    )
