# 参考文档: doc/api.md 认证模块

from .routes import router as auth_router
from .models import RegisterRequest, LoginRequest, ChangePasswordRequest, UpdateUserInfoRequest, TokenData
from .wechat_service import WeChatService, WeChatSession

__all__ = [
    "auth_router",
    "RegisterRequest",
    "LoginRequest",
    "ChangePasswordRequest",
    "UpdateUserInfoRequest",
    "TokenData",
    "WeChatService",
    "WeChatSession"
]
