# 参考文档: doc/server_structure.md
# 安全工具（JWT、密码哈希）

import jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from passlib.context import CryptContext

# bcrypt 工作因子
DEFAULT_BCRYPT_ROUNDS = 10


class MalformedHashError(Exception):
    """存储的密码哈希缺失或无法识别"""


@dataclass(frozen=True)
class IssuedToken:
    """签发的令牌及其过期时间戳（秒）"""
    token: str
    expires_at: int


class JWTManager:
    """
    JWT令牌管理器
    参考文档: doc/server_structure.md - utils/security.py
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 access_token_expire_seconds: int = 86400):
        if not secret_key:
            raise ValueError("JWT密钥不能为空")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_seconds = access_token_expire_seconds

    def issue(self, account_id: str, role: int) -> IssuedToken:
        """
        签发访问令牌

        Args:
            account_id: 账户ID
            role: 账户角色

        Returns:
            令牌字符串和过期时间戳
        """
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        expire = issued_at + timedelta(seconds=self.access_token_expire_seconds)

        payload = {
            "id": account_id,
            "role": role,
            "iat": issued_at,
            "exp": expire,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=token, expires_at=int(expire.timestamp()))

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        验证JWT令牌

        Args:
            token: JWT令牌字符串

        Returns:
            解码后的数据，验证失败或已过期返回None
        """
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "id"]},
            )
        except jwt.ExpiredSignatureError:
            # 令牌过期
            return None
        except jwt.PyJWTError:
            # 令牌无效
            return None


class PasswordHasher:
    """
    密码哈希工具（bcrypt）

    verify 在存储的哈希缺失或损坏时抛出 MalformedHashError，
    以便与“密码错误”区分
    """

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        """
        哈希密码

        Args:
            password: 明文密码

        Returns:
            哈希后的密码
        """
        return self.context.hash(password)

    def verify(self, password: str, hashed_password: Optional[str]) -> bool:
        """
        验证密码

        Args:
            password: 明文密码
            hashed_password: 存储的哈希密码

        Returns:
            是否匹配

        Raises:
            MalformedHashError: 哈希缺失或格式无法识别
        """
        if not hashed_password:
            raise MalformedHashError("密码哈希不存在")

        try:
            return self.context.verify(password, hashed_password)
        except (ValueError, TypeError) as e:
            raise MalformedHashError(f"密码哈希格式错误: {str(e)}") from e

    def dummy_verify(self):
        """账户不存在时执行一次等价耗时的校验"""
        self.context.dummy_verify()
