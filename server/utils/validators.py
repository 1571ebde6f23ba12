# 参考文档: doc/server_structure.md
# 数据验证器

import re
from typing import Any, Optional

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{4,16}$')

EMAIL_PATTERN = re.compile(
    r'^(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r'@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$'
)


def validate_username(username: Any) -> bool:
    """
    验证用户名格式

    4-16位，只允许字母、数字、下划线和连字符

    Args:
        username: 用户名

    Returns:
        验证结果
    """
    if not isinstance(username, str):
        return False

    return USERNAME_PATTERN.fullmatch(username) is not None


def validate_email(email: Any) -> bool:
    """
    验证邮箱格式（不区分大小写）

    域名部分支持普通域名或方括号包裹的IPv4地址

    Args:
        email: 邮箱地址

    Returns:
        验证结果
    """
    if not isinstance(email, str):
        return False

    return EMAIL_PATTERN.fullmatch(email.lower()) is not None


def validate_wechat_open_id(open_id: Any) -> bool:
    """
    验证微信OpenID格式

    Args:
        open_id: 微信OpenID

    Returns:
        验证结果
    """
    if not open_id or not isinstance(open_id, str):
        return False

    # 微信OpenID通常是28位字符，由字母和数字组成
    if len(open_id) < 10 or len(open_id) > 128:
        return False

    return re.match(r'^[a-zA-Z0-9_-]+$', open_id) is not None


def validate_string_length(value: Any, min_length: int = 0, max_length: Optional[int] = None) -> bool:
    """
    验证字符串长度

    Args:
        value: 字符串值
        min_length: 最小长度
        max_length: 最大长度

    Returns:
        验证结果
    """
    if not isinstance(value, str):
        return False

    if len(value) < min_length:
        return False

    if max_length is not None and len(value) > max_length:
        return False

    return True
