# 参考文档: doc/api.md 认证模块
# 账户注册、登录、微信登录相关API路由

import logging
from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .models import (
    RegisterRequest,
    LoginRequest,
    ChangePasswordRequest,
    UpdateUserInfoRequest,
    TokenData,
)
from .wechat_service import WeChatService
from db.account_store import AccountStore
from db.identity_models import VerifiedIdentity
from db.identity_operations import IdentityOperations
from db.manager import DatabaseManager
from utils.config import Config, IdentitySettings
from utils.security import JWTManager, PasswordHasher
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/user", tags=["账户"])

config = Config()
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings() -> IdentitySettings:
    """获取身份认证配置"""
    return IdentitySettings.from_config(config)


def get_database():
    """获取数据库连接（每个请求独立连接）"""
    db_config = config.get_database_config()
    db_manager = DatabaseManager(db_config["path"], auto_connect=True)
    try:
        yield db_manager
    finally:
        db_manager.close()


def get_jwt_manager(settings: IdentitySettings = Depends(get_settings)) -> JWTManager:
    return JWTManager(
        secret_key=settings.token_secret,
        algorithm=settings.token_algorithm,
        access_token_expire_seconds=settings.token_ttl_seconds
    )


def get_wechat_service(settings: IdentitySettings = Depends(get_settings)) -> WeChatService:
    return WeChatService(
        login_url=settings.wechat_login_url,
        timeout=settings.wechat_timeout_seconds,
        mock_mode=settings.wechat_mock_mode
    )


def get_identity_operations(
    db: DatabaseManager = Depends(get_database),
    settings: IdentitySettings = Depends(get_settings),
    jwt_manager: JWTManager = Depends(get_jwt_manager),
    wechat_service: WeChatService = Depends(get_wechat_service)
) -> IdentityOperations:
    """组装身份认证业务操作"""
    return IdentityOperations(
        store=AccountStore(db),
        settings=settings,
        jwt_manager=jwt_manager,
        wechat_service=wechat_service,
        password_hasher=PasswordHasher(rounds=settings.bcrypt_rounds)
    )


def get_verified_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    jwt_manager: JWTManager = Depends(get_jwt_manager)
) -> Optional[VerifiedIdentity]:
    """
    从 Bearer 令牌解析调用者身份

    未携带或令牌无效时返回None，由业务层决定是否拒绝
    """
    if credentials is None:
        return None

    payload = jwt_manager.verify_token(credentials.credentials)
    if not payload:
        logger.info("令牌无效或已过期")
        return None

    token_data = TokenData(**payload)
    return VerifiedIdentity(id=token_data.id, role=token_data.role)


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
def register(
    register_request: RegisterRequest,
    identity_ops: IdentityOperations = Depends(get_identity_operations)
):
    """
    用户名密码注册
    """
    message = identity_ops.register(
        username=register_request.username,
        password=register_request.password,
        email=register_request.email
    )
    return create_success_response(data=message, message=message)


@router.post("/login", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
def login(
    login_request: LoginRequest,
    identity_ops: IdentityOperations = Depends(get_identity_operations)
):
    """
    用户名密码登录，返回访问令牌
    """
    result = identity_ops.login(
        username=login_request.username,
        password=login_request.password
    )
    return create_success_response(data=result.model_dump(), message="登录成功")


@router.put("/password", response_model=Dict[str, Any])
def change_password(
    password_request: ChangePasswordRequest,
    identity_ops: IdentityOperations = Depends(get_identity_operations)
):
    """
    校验用户名和邮箱后重设密码
    """
    identity_ops.change_password(
        username=password_request.username,
        password=password_request.password,
        email=password_request.email
    )
    return create_success_response(message="密码修改成功")


@router.get("/wechat/login", response_model=Dict[str, Any])
async def wechat_login(
    code: str = Query("", description="wx.login 获取的 code"),
    appid: Optional[str] = Header(None, description="小程序AppId"),
    identity_ops: IdentityOperations = Depends(get_identity_operations)
):
    """
    微信小程序登录，首次登录自动创建账户
    """
    result = await identity_ops.sign_in_with_wechat(app_id=appid, code=code)
    return create_success_response(data=result.model_dump(), message="登录成功")


@router.put("/wechat/userinfo", response_model=Dict[str, Any])
def update_wechat_user_info(
    update_request: UpdateUserInfoRequest,
    appid: Optional[str] = Header(None, description="小程序AppId"),
    identity: Optional[VerifiedIdentity] = Depends(get_verified_identity),
    identity_ops: IdentityOperations = Depends(get_identity_operations)
):
    """
    更新当前微信用户资料
    """
    user = identity_ops.update_wechat_user_info(
        app_id=appid,
        user_info=update_request.user_info,
        identity=identity
    )
    return create_success_response(data=user, message="资料更新成功")
