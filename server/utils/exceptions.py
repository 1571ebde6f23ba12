# 参考文档: doc/api.md 错误码
# 身份认证业务异常定义


class IdentityError(Exception):
    """
    身份认证业务异常基类

    每个子类对应一个稳定的错误分类和HTTP状态码，
    路由层据此转换为 HTTPException
    """
    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(IdentityError):
    """用户名、邮箱格式错误或缺少密码"""
    status_code = 400
    error_type = "invalid_input"


class AuthenticationFailedError(IdentityError):
    """凭证不匹配、AppId未注册、未登录"""
    status_code = 401
    error_type = "authentication_failed"


class ForbiddenError(IdentityError):
    """注册功能未开放"""
    status_code = 403
    error_type = "forbidden"


class ConflictError(IdentityError):
    """用户名已被占用"""
    status_code = 409
    error_type = "conflict"


class UpstreamFailureError(IdentityError):
    """
    微信接口不可达或返回数据异常

    对调用方表现为认证失败（401），日志中单独记录
    """
    status_code = 401
    error_type = "upstream_failure"


class InternalError(IdentityError):
    """存储不可用、密码哈希损坏等内部错误"""
    status_code = 500
    error_type = "internal_error"
