# 参考文档: doc/api.md 用户模块
# 身份认证核心使用的数据模型

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class VerifiedIdentity(BaseModel):
    """已由令牌校验得到的调用者身份"""
    id: str
    role: int = 0


class WeChatUserInfo(BaseModel):
    """
    微信用户资料（wx.getUserInfo 返回的 userInfo）

    只允许以下字段，updated_at/updated_by 等审计字段由服务端写入
    """
    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    nick_name: Optional[str] = Field(None, alias='nickName', max_length=100)
    avatar_url: Optional[str] = Field(None, alias='avatarUrl', max_length=500)
    gender: Optional[int] = Field(None, ge=0, le=2, description="0 未知, 1 男, 2 女")
    country: Optional[str] = Field(None, max_length=100)
    province: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    language: Optional[str] = Field(None, max_length=20)


class LoginResult(BaseModel):
    """登录成功结果"""
    token: str
    user: Dict[str, Any]
    expired_at: int
