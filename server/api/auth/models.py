# 参考文档: doc/api.md 认证模块
# 认证相关的请求/响应模型

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from db.identity_models import WeChatUserInfo


class RegisterRequest(BaseModel):
    """注册请求模型（格式校验在业务层完成，以返回统一的错误信息）"""
    username: str = Field(..., description="用户名，4-16位字母数字下划线连字符")
    password: str = Field(..., description="密码")
    email: str = Field(..., description="邮箱")


class LoginRequest(BaseModel):
    """密码登录请求模型"""
    username: str = ""
    password: str = ""


class ChangePasswordRequest(BaseModel):
    """修改密码请求模型"""
    username: str = Field(..., description="用户名")
    password: str = Field(..., description="新密码")
    email: str = Field(..., description="注册时填写的邮箱")


class UpdateUserInfoRequest(BaseModel):
    """更新微信资料请求模型"""
    model_config = ConfigDict(populate_by_name=True)

    user_info: WeChatUserInfo = Field(..., alias='userInfo')


class TokenData(BaseModel):
    """JWT Token数据模型"""
    id: str
    role: int = 0
    iat: Optional[int] = None
    exp: Optional[int] = None
