# 参考文档: doc/api.md
# 身份认证核心业务：注册、密码登录、修改密码、微信登录、更新微信资料

import logging
import time
from typing import Any, Dict, Optional

from .account_store import AccountStore, DuplicateAccountError, StoreError, to_public
from .identity_models import LoginResult, VerifiedIdentity, WeChatUserInfo
from utils.config import IdentitySettings
from utils.exceptions import (
    AuthenticationFailedError,
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    UpstreamFailureError,
)
from utils.security import JWTManager, MalformedHashError, PasswordHasher
from utils.validators import (
    validate_email,
    validate_string_length,
    validate_username,
    validate_wechat_open_id,
)

logger = logging.getLogger(__name__)

LOGIN_MISMATCH_MESSAGE = "Username and password mismatch."
APP_ID_NOT_FOUND_MESSAGE = "App Id is not found. Make sure your app has been registered."
SIGN_IN_REQUIRED_MESSAGE = "You have to sign in to use this feature."

PASSWORD_MAX_LENGTH = 128


class IdentityOperations:
    """
    身份认证业务操作类

    每次调用都直接读写存储，不缓存任何账户状态；
    并发注册和首次微信登录的去重依赖存储层的唯一约束
    """

    def __init__(self, store: AccountStore, settings: IdentitySettings,
                 jwt_manager: JWTManager, wechat_service, password_hasher: PasswordHasher):
        """
        Args:
            store: 账户存储（find_one/create/update_one）
            settings: 身份认证配置
            jwt_manager: 令牌签发器
            wechat_service: 微信 code2Session 客户端，需提供 async exchange(app_id, app_secret, code)
            password_hasher: 密码哈希工具
        """
        self.store = store
        self.settings = settings
        self.jwt_manager = jwt_manager
        self.wechat_service = wechat_service
        self.password_hasher = password_hasher

    def _find_account(self, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.store.find_one(filters)
        except StoreError as e:
            logger.error(f"查询账户失败: {str(e)}")
            raise InternalError("Account storage is unavailable.") from e

    def _issue_login_result(self, account: Dict[str, Any]) -> LoginResult:
        issued = self.jwt_manager.issue(account['id'], account['role'])
        return LoginResult(
            token=issued.token,
            user=to_public(account),
            expired_at=issued.expires_at
        )

    def register(self, username: str, password: str, email: str) -> str:
        """
        使用用户名和密码注册新账户

        Args:
            username: 用户名
            password: 明文密码
            email: 邮箱，用于修改密码时校验

        Returns:
            注册成功提示

        Raises:
            ForbiddenError: 注册未开放
            InvalidInputError: 用户名、密码或邮箱无效
            ConflictError: 用户名已被占用
        """
        if not self.settings.registration_open:
            raise ForbiddenError("Registration is not open.")

        if not validate_username(username):
            raise InvalidInputError("Invalid username.")

        if not validate_string_length(password, 1, PASSWORD_MAX_LENGTH):
            raise InvalidInputError("Invalid password.")

        if not validate_email(email):
            raise InvalidInputError("Invalid email address.")

        normalized = username.lower()

        if self._find_account({'username': normalized}):
            logger.info(f"注册失败，用户名已存在: {normalized}")
            raise ConflictError("The username has been taken.")

        record = {
            'username': normalized,
            'password_hash': self.password_hasher.hash(password),
            'email': email.lower(),
            'role': 0,
            'created_at': int(time.time()),
        }

        try:
            self.store.create(record)
        except DuplicateAccountError as e:
            # 并发注册时另一请求已先写入
            logger.info(f"注册冲突，用户名已存在: {normalized}")
            raise ConflictError("The username has been taken.") from e
        except StoreError as e:
            logger.error(f"创建账户失败: {str(e)}")
            raise InternalError("Account storage is unavailable.") from e

        logger.info(f"用户注册成功: {normalized}")
        return f"User {username} has successfully registered."

    def login(self, username: str, password: str) -> LoginResult:
        """
        用户名密码登录

        账户不存在、密码错误、哈希损坏统一返回同一错误信息，避免用户名枚举

        Raises:
            AuthenticationFailedError: 用户名和密码不匹配
        """
        if not isinstance(username, str) or not username or not isinstance(password, str) or not password:
            raise AuthenticationFailedError(LOGIN_MISMATCH_MESSAGE)

        account = self._find_account({'username': username.lower()})

        if account is None:
            self.password_hasher.dummy_verify()
            logger.info("登录失败: 账户不存在")
            raise AuthenticationFailedError(LOGIN_MISMATCH_MESSAGE)

        try:
            matched = self.password_hasher.verify(password, account.get('password_hash'))
        except MalformedHashError as e:
            logger.error(f"账户 {account['id']} 的密码哈希不可用: {str(e)}")
            raise AuthenticationFailedError(LOGIN_MISMATCH_MESSAGE) from e

        if not matched:
            logger.info(f"登录失败: 账户 {account['id']} 密码错误")
            raise AuthenticationFailedError(LOGIN_MISMATCH_MESSAGE)

        logger.info(f"用户登录成功: {account['id']}")
        return self._issue_login_result(account)

    def change_password(self, username: str, password: str, email: str) -> None:
        """
        通过用户名和邮箱校验后重设密码

        更新以匹配到的账户ID为条件，与查询结果保持一致

        Raises:
            InvalidInputError: 邮箱或新密码无效
            AuthenticationFailedError: 用户名不存在或邮箱不匹配
        """
        if not validate_email(email):
            raise InvalidInputError("Invalid email address.")

        if not validate_string_length(password, 1, PASSWORD_MAX_LENGTH):
            raise InvalidInputError("Invalid password.")

        mismatch = AuthenticationFailedError(
            f"User {username} is not found or the email given and username mismatch."
        )

        if not isinstance(username, str) or not username:
            raise mismatch

        account = self._find_account({'username': username.lower(), 'email': email.lower()})
        if account is None:
            logger.info("修改密码失败: 用户名与邮箱不匹配")
            raise mismatch

        hashed_password = self.password_hasher.hash(password)

        try:
            self.store.update_one({'id': account['id']}, {'password_hash': hashed_password})
        except StoreError as e:
            logger.error(f"更新密码失败: {str(e)}")
            raise InternalError("Account storage is unavailable.") from e

        logger.info(f"账户 {account['id']} 密码已修改")

    async def sign_in_with_wechat(self, app_id: str, code: str) -> LoginResult:
        """
        微信小程序登录，首次登录时自动创建账户

        Args:
            app_id: 请求头中的小程序AppId
            code: wx.login 获取的一次性 code

        Returns:
            令牌、账户对外字段和过期时间

        Raises:
            AuthenticationFailedError: AppId未注册或微信拒绝该 code
            UpstreamFailureError: 微信接口不可用或返回的openid格式异常
            InvalidInputError: 缺少 code
        """
        app_secret = self.settings.get_app_secret(app_id)
        if not app_secret:
            logger.warning(f"未注册的AppId: {app_id}")
            raise AuthenticationFailedError(APP_ID_NOT_FOUND_MESSAGE)

        if not code:
            raise InvalidInputError("Invalid code.")

        session = await self.wechat_service.exchange(app_id, app_secret, code)

        if not session.openid:
            raise AuthenticationFailedError(f"Login failed. errcode: {session.errcode}. {session.errmsg}")

        if not validate_wechat_open_id(session.openid):
            logger.error("微信接口返回的openid格式异常")
            raise UpstreamFailureError("WeChat login service returned a malformed openid.")

        key = {'open_id': session.openid, 'app_id': app_id}
        account = self._find_account(key)

        if account is None:
            try:
                account = self.store.create({
                    'open_id': session.openid,
                    'app_id': app_id,
                    'role': 0,
                    'created_at': int(time.time()),
                })
                logger.info(f"微信用户首次登录，已创建账户: {account['id']}")
            except DuplicateAccountError:
                # 并发的首次登录已创建该账户，改为读取
                logger.info(f"微信账户已由并发请求创建: {session.openid[:8]}***")
                account = self._find_account(key)
            except StoreError as e:
                logger.error(f"创建微信账户失败: {str(e)}")
                raise InternalError("Account storage is unavailable.") from e

            if account is None:
                raise InternalError("Account storage is unavailable.")

        return self._issue_login_result(account)

    def update_wechat_user_info(self, app_id: str, user_info: WeChatUserInfo,
                                identity: Optional[VerifiedIdentity]) -> Dict[str, Any]:
        """
        合并微信用户资料到当前账户

        Args:
            app_id: 请求头中的小程序AppId
            user_info: 允许修改的资料字段
            identity: 已校验的调用者身份，未登录为None

        Returns:
            更新后的账户对外字段

        Raises:
            InvalidInputError: AppId未注册
            AuthenticationFailedError: 未登录或账户不存在
        """
        if not self.settings.get_app_secret(app_id):
            logger.warning(f"未注册的AppId: {app_id}")
            raise InvalidInputError(APP_ID_NOT_FOUND_MESSAGE)

        if identity is None or not identity.id:
            raise AuthenticationFailedError(SIGN_IN_REQUIRED_MESSAGE)

        account = self._find_account({'id': identity.id})
        if account is None:
            logger.warning(f"令牌对应的账户不存在: {identity.id}")
            raise AuthenticationFailedError(SIGN_IN_REQUIRED_MESSAGE)

        patch = {
            'updated_at': int(time.time()),
            'updated_by': identity.id,
            'updated_app_id': app_id,
        }

        try:
            self.store.merge_profile({'id': account['id']}, user_info.model_dump(exclude_unset=True), patch)
        except StoreError as e:
            logger.error(f"更新微信资料失败: {str(e)}")
            raise InternalError("Account storage is unavailable.") from e

        updated = self._find_account({'id': account['id']})
        if updated is None:
            raise InternalError("Account storage is unavailable.")

        logger.info(f"账户 {account['id']} 微信资料已更新")
        return to_public(updated)
